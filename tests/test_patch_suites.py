"""Tests for the named patch suites."""

import pytest

from image_catalog import CatalogRef
from matrix_expander import SuiteBinding
from patch_suites import SUITE_BINDINGS, PatchTestSuites
from validator import validate_matrix


@pytest.fixture
def suites(registry, catalog):
    return PatchTestSuites(registry, catalog)


def _images(catalog, *refs):
    images = {}
    for ref in refs:
        images.update(catalog.subset(ref))
    return images


class TestSuiteSelectors:
    @pytest.mark.parametrize("suite_name", list(SUITE_BINDINGS))
    def test_instances_come_from_suite_subsets(self, suites, catalog, suite_name):
        refs = [binding.catalog_ref for binding in SUITE_BINDINGS[suite_name]]
        allowed = _images(catalog, *refs)

        instances = suites.select(suite_name)

        assert len(instances) == sum(len(catalog.subset(ref)) for ref in refs)
        for instance in instances:
            assert allowed[instance.name] == instance.image

    @pytest.mark.parametrize("suite_name", list(SUITE_BINDINGS))
    def test_instance_names_are_unique(self, suites, suite_name):
        names = [instance.name for instance in suites.select(suite_name)]

        assert len(names) == len(set(names))

    def test_head_images_cover_all_families(self, suites):
        template_ids = {i.template_id for i in suites.head_images()}

        assert template_ids == {"windows", "el7", "el8", "el9", "apt", "suse"}

    def test_old_images_use_pinned_images(self, suites):
        instances = suites.old_images()

        assert instances
        assert all("/images/family/" not in i.image for i in instances)

    def test_apt_head_images(self, suites, catalog):
        instances = suites.apt_head_images()

        assert {i.template_id for i in instances} == {"apt"}
        assert {i.name for i in instances} == set(catalog.subset(CatalogRef("apt", "head")))

    def test_apt_downgrade_images(self, suites):
        instances = suites.apt_downgrade_images()

        assert [i.name for i in instances] == ["debian-cloud/debian-10"]
        assert "snapshot.debian.org" in instances[0].metadata_value("startup-script")

    def test_yum_head_images(self, suites):
        template_ids = {i.template_id for i in suites.yum_head_images()}

        assert template_ids == {"el7", "el8", "el9"}

    def test_suse_head_images(self, suites):
        instances = suites.suse_head_images()

        assert {i.machine_type for i in instances} == {"e2-medium"}
        assert {i.template_id for i in instances} == {"suse"}

    def test_windows_instances_use_larger_shape(self, suites):
        windows = [i for i in suites.head_images() if i.template_id == "windows"]

        assert windows
        assert {i.machine_type for i in windows} == {"e2-standard-4"}

    def test_unknown_suite(self, suites):
        with pytest.raises(KeyError, match="Unknown patch suite 'arm_images'"):
            suites.select("arm_images")

    def test_suite_names(self, suites):
        assert suites.suite_names() == list(SUITE_BINDINGS)

    def test_selectors_return_fresh_instances(self, suites):
        first = suites.apt_head_images()
        first[0].metadata.clear()

        assert suites.apt_head_images()[0].metadata


def test_default_matrix_is_valid(registry, catalog):
    assert validate_matrix(registry, catalog, SUITE_BINDINGS) is True


class TestSuiteBindings:
    def test_default_table_is_read_only(self):
        with pytest.raises(TypeError):
            SUITE_BINDINGS["head_images"] = ()

        assert SUITE_BINDINGS["head_images"]

    def test_suites_keep_their_own_bindings(self, registry, catalog):
        source = {"apt_only": [SuiteBinding("apt", CatalogRef("apt", "head"))]}
        suites = PatchTestSuites(registry, catalog, source)

        source["apt_only"].clear()
        source["suse_only"] = [SuiteBinding("suse", CatalogRef("suse", "head"))]

        assert suites.suite_names() == ["apt_only"]
        assert {i.template_id for i in suites.select("apt_only")} == {"apt"}
        with pytest.raises(TypeError):
            suites.bindings["apt_only"] = ()

    def test_custom_bindings_replace_defaults(self, registry, catalog):
        bindings = {"el9_only": (SuiteBinding("el9", CatalogRef("el9", "head")),)}
        suites = PatchTestSuites(registry, catalog, bindings)

        with pytest.raises(KeyError):
            suites.head_images()


def test_old_image_names_keep_their_project(catalog):
    names = [
        name
        for ref in catalog.refs()
        if ref.stage == "old"
        for name in catalog.subset(ref)
    ]

    assert "old/centos-cloud/centos-7" in names
    assert "old/rhel-cloud/rhel-7" in names
    assert all(name.startswith("old/") and name.count("/") == 2 for name in names)
