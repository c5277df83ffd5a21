"""Tests for the patch test template registry."""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from patch_templates import (
    LINUX_STARTUP_KEY,
    WINDOWS_SPECIALIZE_KEY,
    WINDOWS_STARTUP_KEY,
    build_template_registry,
)
from script_library import BOOT_COUNT_URL, POST_STEP_URL, PRE_STEP_URL


class TestBuildTemplateRegistry:
    def test_has_every_family_and_variant(self, registry):
        assert sorted(registry.ids()) == sorted(
            ["windows", "apt", "apt-downgrade", "el7", "el8", "el9", "suse"]
        )
        assert len(registry) == 7

    def test_unknown_agent_repo_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown agent repo 'nightly'"):
            build_template_registry("nightly")

    def test_agent_repo_reaches_scripts(self):
        registry = build_template_registry("staging")

        script = registry.get("el9").metadata_value(LINUX_STARTUP_KEY)
        assert "google-osconfig-agent-el9-staging" in script

    def test_unknown_template_raises_key_error(self, registry):
        with pytest.raises(KeyError, match="centos"):
            registry.get("centos")


class TestTemplateShapes:
    def test_windows_template(self, registry):
        windows = registry.get("windows")

        assert windows.assert_timeout == timedelta(minutes=60)
        assert windows.machine_type == "e2-standard-4"
        assert windows.metadata_keys() == [
            WINDOWS_SPECIALIZE_KEY,
            WINDOWS_STARTUP_KEY,
            "enable-osconfig",
            "osconfig-disabled-features",
        ]
        assert POST_STEP_URL in windows.metadata_value(WINDOWS_STARTUP_KEY)

    @pytest.mark.parametrize(
        "template_id,minutes",
        [("apt", 10), ("apt-downgrade", 10), ("el7", 15), ("el8", 15), ("el9", 15), ("suse", 15)],
    )
    def test_linux_templates(self, registry, template_id, minutes):
        template = registry.get(template_id)

        assert template.assert_timeout == timedelta(minutes=minutes)
        assert template.machine_type == "e2-medium"
        assert template.metadata_keys() == [
            LINUX_STARTUP_KEY,
            "enable-osconfig",
            "osconfig-disabled-features",
        ]
        script = template.metadata_value(LINUX_STARTUP_KEY)
        assert script.index(BOOT_COUNT_URL) < script.index(PRE_STEP_URL)

    def test_flags(self, registry):
        template = registry.get("suse")

        assert template.metadata_value("enable-osconfig") == "true"
        assert (
            template.metadata_value("osconfig-disabled-features")
            == "guestpolicies,osinventory"
        )

    def test_only_downgrade_template_mutates_state(self, registry):
        downgrade = registry.get("apt-downgrade").metadata_value(LINUX_STARTUP_KEY)
        apt = registry.get("apt").metadata_value(LINUX_STARTUP_KEY)

        assert "snapshot.debian.org" not in apt
        assert downgrade.startswith(apt)
        assert downgrade.rstrip().endswith("Pin-priority: 9999' >> /etc/apt/preferences")


class TestTemplateImmutability:
    def test_fields_cannot_be_reassigned(self, registry):
        with pytest.raises(FrozenInstanceError):
            registry.get("apt").machine_type = "e2-small"

    def test_metadata_items_are_read_only(self, registry):
        template = registry.get("apt")

        with pytest.raises(TypeError):
            template.metadata[0]["value"] = "echo hijacked"

    def test_metadata_is_a_tuple(self, registry):
        assert isinstance(registry.get("el8").metadata, tuple)

    def test_metadata_value_lookup(self, apt_like_template):
        assert apt_like_template.metadata_value("enable-osconfig") == "true"
        with pytest.raises(KeyError):
            apt_like_template.metadata_value("missing")
