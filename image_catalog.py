# -----------------------------------------------------------------------------
# Image Catalog
#
# Public Compute Engine images used by the patch tests, grouped by OS family
# and lifecycle stage. Each subset maps a test instance name to an image.
# -----------------------------------------------------------------------------

from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple

FAMILIES = ("windows", "el7", "el8", "el9", "apt", "suse")
STAGES = ("head", "old", "downgrade")


class CatalogRef(NamedTuple):
    """Address of one catalog subset."""

    family: str
    stage: str

    def __str__(self) -> str:
        return f"{self.family}/{self.stage}"


class ImageCatalog:
    """
    Read-only store of image subsets keyed by (family, stage).
    """

    def __init__(self, subsets: Mapping[CatalogRef, Mapping[str, str]]):
        self._subsets = MappingProxyType(
            {
                CatalogRef(*ref): MappingProxyType(dict(images))
                for ref, images in subsets.items()
            }
        )

    def subset(self, ref: CatalogRef) -> Mapping[str, str]:
        try:
            return self._subsets[ref]
        except KeyError:
            raise KeyError(f"Unknown image catalog subset '{ref}'") from None

    def refs(self) -> List[CatalogRef]:
        return list(self._subsets)

    def __contains__(self, ref: object) -> bool:
        return ref in self._subsets


def _family_images(project: str, families: List[str]) -> Dict[str, str]:
    return {
        f"{project}/{family}": f"projects/{project}/global/images/family/{family}"
        for family in families
    }


def _pinned_images(project: str, images: Dict[str, str]) -> Dict[str, str]:
    return {
        f"old/{project}/{name}": f"projects/{project}/global/images/{image}"
        for name, image in images.items()
    }


def default_image_catalog() -> ImageCatalog:
    """
    Build the catalog of images the patch suites run against.

    Head images follow image families; old images are pinned releases.

    Returns:
        ImageCatalog: Catalog covering every family and stage in use
    """
    subsets = {
        CatalogRef("windows", "head"): _family_images(
            "windows-cloud",
            [
                "windows-2012-r2",
                "windows-2012-r2-core",
                "windows-2016",
                "windows-2016-core",
                "windows-2019",
                "windows-2019-core",
                "windows-2022",
                "windows-2022-core",
            ],
        ),
        CatalogRef("windows", "old"): _pinned_images(
            "windows-cloud",
            {
                "windows-2012-r2": "windows-server-2012-r2-dc-v20230711",
                "windows-2016": "windows-server-2016-dc-v20230711",
                "windows-2019": "windows-server-2019-dc-v20230711",
                "windows-2022": "windows-server-2022-dc-v20230711",
            },
        ),
        CatalogRef("el7", "head"): {
            **_family_images("centos-cloud", ["centos-7"]),
            **_family_images("rhel-cloud", ["rhel-7"]),
            **_family_images("rhel-sap-cloud", ["rhel-7-7-sap-ha"]),
        },
        CatalogRef("el7", "old"): {
            **_pinned_images("centos-cloud", {"centos-7": "centos-7-v20230615"}),
            **_pinned_images("rhel-cloud", {"rhel-7": "rhel-7-v20230615"}),
        },
        CatalogRef("el8", "head"): {
            **_family_images("rocky-linux-cloud", ["rocky-linux-8"]),
            **_family_images("rhel-cloud", ["rhel-8"]),
            **_family_images("almalinux-cloud", ["almalinux-8"]),
        },
        CatalogRef("el8", "old"): {
            **_pinned_images(
                "rocky-linux-cloud", {"rocky-linux-8": "rocky-linux-8-v20230615"}
            ),
            **_pinned_images("rhel-cloud", {"rhel-8": "rhel-8-v20230615"}),
        },
        CatalogRef("el9", "head"): {
            **_family_images("rocky-linux-cloud", ["rocky-linux-9"]),
            **_family_images("rhel-cloud", ["rhel-9"]),
            **_family_images("centos-cloud", ["centos-stream-9"]),
        },
        CatalogRef("el9", "old"): {
            **_pinned_images(
                "rocky-linux-cloud", {"rocky-linux-9": "rocky-linux-9-v20230615"}
            ),
            **_pinned_images("rhel-cloud", {"rhel-9": "rhel-9-v20230615"}),
        },
        CatalogRef("apt", "head"): {
            **_family_images("debian-cloud", ["debian-10", "debian-11", "debian-12"]),
            **_family_images(
                "ubuntu-os-cloud", ["ubuntu-2004-lts", "ubuntu-2204-lts"]
            ),
        },
        CatalogRef("apt", "old"): {
            **_pinned_images(
                "debian-cloud",
                {
                    "debian-10": "debian-10-buster-v20230615",
                    "debian-11": "debian-11-bullseye-v20230615",
                },
            ),
            **_pinned_images(
                "ubuntu-os-cloud",
                {"ubuntu-2004-lts": "ubuntu-2004-focal-v20230615"},
            ),
        },
        # The downgrade fragment pins a buster snapshot, so only debian-10 fits.
        CatalogRef("apt", "downgrade"): _family_images("debian-cloud", ["debian-10"]),
        CatalogRef("suse", "head"): {
            **_family_images("suse-cloud", ["sles-12", "sles-15"]),
            **_family_images("opensuse-cloud", ["opensuse-leap"]),
        },
        CatalogRef("suse", "old"): _pinned_images(
            "suse-cloud",
            {
                "sles-12": "sles-12-sp5-v20230615-x86-64",
                "sles-15": "sles-15-sp4-v20230615-x86-64",
            },
        ),
    }
    return ImageCatalog(subsets)
