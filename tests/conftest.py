"""Shared fixtures for the patch test matrix tests."""

from datetime import timedelta

import pytest

from image_catalog import default_image_catalog
from patch_templates import PatchTestTemplate, build_metadata_item, build_template_registry


@pytest.fixture
def registry():
    return build_template_registry()


@pytest.fixture
def catalog():
    return default_image_catalog()


@pytest.fixture
def apt_like_template():
    return PatchTestTemplate(
        template_id="apt",
        metadata=(
            build_metadata_item("startup-script", "echo boot"),
            build_metadata_item("enable-osconfig", "true"),
        ),
        assert_timeout=timedelta(minutes=10),
        machine_type="e2-medium",
    )
