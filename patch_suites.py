# -----------------------------------------------------------------------------
# Patch Test Suites
#
# Named selections of (template, image subset) bindings. Each suite expands
# into the list of test instances the orchestrator provisions.
# -----------------------------------------------------------------------------

from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from image_catalog import FAMILIES, CatalogRef, ImageCatalog
from matrix_expander import SuiteBinding, TestInstance, expand_matrix
from patch_templates import TemplateRegistry


def _all_families(stage: str) -> Tuple[SuiteBinding, ...]:
    return tuple(SuiteBinding(family, CatalogRef(family, stage)) for family in FAMILIES)


SUITE_BINDINGS: Mapping[str, Tuple[SuiteBinding, ...]] = MappingProxyType(
    {
        "head_images": _all_families("head"),
        "old_images": _all_families("old"),
        "apt_head_images": (SuiteBinding("apt", CatalogRef("apt", "head")),),
        "apt_downgrade_images": (
            SuiteBinding("apt-downgrade", CatalogRef("apt", "downgrade")),
        ),
        "yum_head_images": tuple(
            SuiteBinding(el, CatalogRef(el, "head")) for el in ("el7", "el8", "el9")
        ),
        "suse_head_images": (SuiteBinding("suse", CatalogRef("suse", "head")),),
    }
)


class PatchTestSuites:
    """
    Entry points that produce the test instances for each patch suite.

    Attributes:
        registry: Templates the suites expand
        catalog: Images the suites expand against
        bindings: Suite name to the bindings it expands
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        catalog: ImageCatalog,
        bindings: Optional[Mapping[str, Tuple[SuiteBinding, ...]]] = None,
    ):
        self.registry = registry
        self.catalog = catalog
        if bindings is None:
            bindings = SUITE_BINDINGS
        self.bindings = MappingProxyType(
            {name: tuple(pairs) for name, pairs in bindings.items()}
        )

    def suite_names(self) -> List[str]:
        return list(self.bindings)

    def select(self, suite_name: str) -> List[TestInstance]:
        """
        Expand a suite by name.

        Args:
            suite_name: One of suite_names()

        Returns:
            List[TestInstance]: Fresh instances for the suite

        Raises:
            KeyError: If the suite is unknown
        """
        if suite_name not in self.bindings:
            raise KeyError(
                f"Unknown patch suite '{suite_name}'. "
                f"Valid suites are: {', '.join(self.bindings)}"
            )
        return expand_matrix(self.registry, self.catalog, self.bindings[suite_name])

    def head_images(self) -> List[TestInstance]:
        """All families on their newest images."""
        return self.select("head_images")

    def old_images(self) -> List[TestInstance]:
        """All families on pinned legacy images."""
        return self.select("old_images")

    def apt_head_images(self) -> List[TestInstance]:
        return self.select("apt_head_images")

    def apt_downgrade_images(self) -> List[TestInstance]:
        return self.select("apt_downgrade_images")

    def yum_head_images(self) -> List[TestInstance]:
        return self.select("yum_head_images")

    def suse_head_images(self) -> List[TestInstance]:
        return self.select("suse_head_images")
