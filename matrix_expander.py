# -----------------------------------------------------------------------------
# Test Matrix Expander
#
# Turns (template, image subset) bindings into one independent test instance
# per image. Instances are provisioned in parallel by the orchestrator, so no
# instance may share mutable state with its template or its siblings.
# -----------------------------------------------------------------------------

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, NamedTuple

import pulumi

from image_catalog import CatalogRef, ImageCatalog
from patch_templates import (
    MetadataItem,
    PatchTestTemplate,
    TemplateRegistry,
    build_metadata_item,
)


class SuiteBinding(NamedTuple):
    """Associates a template with the catalog subset it runs against."""

    template_id: str
    catalog_ref: CatalogRef


@dataclass
class TestInstance:
    """
    One patch test VM configuration handed to the orchestrator.

    Attributes:
        name: Test instance name, unique within a suite
        image: Compute Engine image to boot
        metadata: Instance metadata items
        assert_timeout: Upper bound for the post-boot patch assertions
        machine_type: Compute Engine machine type
        template_id: Template the instance was expanded from
    """

    __test__ = False  # not a pytest test class

    name: str
    image: str
    metadata: List[MetadataItem] = field(default_factory=list)
    assert_timeout: timedelta = timedelta(0)
    machine_type: str = ""
    template_id: str = ""

    def metadata_value(self, key: str) -> str:
        for item in self.metadata:
            if item["key"] == key:
                return item["value"]
        raise KeyError(f"Test instance '{self.name}' has no metadata key '{key}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "image": self.image,
            "metadata": [dict(item) for item in self.metadata],
            "assertTimeoutSeconds": int(self.assert_timeout.total_seconds()),
            "machineType": self.machine_type,
            "template": self.template_id,
        }


def instantiate(template: PatchTestTemplate, name: str, image: str) -> TestInstance:
    """
    Create a test instance from a template.

    Every metadata item is rebuilt so the instance owns its whole metadata
    list.

    Args:
        template: Template to copy from
        name: Test instance name
        image: Image identifier

    Returns:
        TestInstance: A fully independent instance
    """
    return TestInstance(
        name=name,
        image=image,
        metadata=[
            build_metadata_item(item["key"], item["value"])
            for item in template.metadata
        ],
        assert_timeout=template.assert_timeout,
        machine_type=template.machine_type,
        template_id=template.template_id,
    )


def expand_matrix(
    registry: TemplateRegistry,
    catalog: ImageCatalog,
    bindings: Iterable[SuiteBinding],
) -> List[TestInstance]:
    """
    Expand bindings into one test instance per (template, name, image).

    Bindings are expanded in the order given and images within a subset in
    name order.

    Args:
        registry: Templates to expand
        catalog: Image subsets to expand against
        bindings: Template/subset pairs

    Returns:
        List[TestInstance]: The expanded instances
    """
    instances: List[TestInstance] = []
    for binding in bindings:
        template = registry.get(binding.template_id)
        images = catalog.subset(binding.catalog_ref)
        for name in sorted(images):
            instances.append(instantiate(template, name, images[name]))
        pulumi.log.debug(
            f"Expanded template '{binding.template_id}' against "
            f"'{binding.catalog_ref}' into {len(images)} test instances"
        )
    return instances
