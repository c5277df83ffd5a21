# -----------------------------------------------------------------------------
# Patch Test Templates
#
# Base configurations for OS patch test instances, one per OS family and
# variant. Templates are built once and never mutated; per-image instances are
# produced from them by the matrix expander.
# -----------------------------------------------------------------------------

from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Tuple, TypedDict

import pulumi

from script_library import (
    AGENT_REPOS,
    SCRIPT_SEPARATOR,
    PatchScriptLibrary,
    compose_startup_script,
)

WINDOWS_STARTUP_KEY = "windows-startup-script-ps1"
WINDOWS_SPECIALIZE_KEY = "sysprep-specialize-script-ps1"
LINUX_STARTUP_KEY = "startup-script"
STARTUP_SCRIPT_KEYS = (WINDOWS_STARTUP_KEY, LINUX_STARTUP_KEY)


class MetadataItem(TypedDict):
    """
    A single Compute Engine instance metadata entry.

    Attributes:
        key: Metadata key
        value: Opaque metadata value (script or flag)
    """

    key: str
    value: str


def build_metadata_item(key: str, value: str) -> MetadataItem:
    """Build an instance metadata item."""
    return {"key": key, "value": value}


@dataclass(frozen=True)
class PatchTestTemplate:
    """
    Immutable prototype for patch test instances of one OS family/variant.

    Attributes:
        template_id: Registry identifier, e.g. "apt" or "el8"
        metadata: Metadata items shared by every instance of the template
        assert_timeout: Upper bound for the post-boot patch assertions
        machine_type: Compute Engine machine type
    """

    template_id: str
    metadata: Tuple[Mapping[str, str], ...]
    assert_timeout: timedelta
    machine_type: str

    def __post_init__(self):
        # Items are stored as read-only views; instances get their own dicts.
        frozen = tuple(MappingProxyType(dict(item)) for item in self.metadata)
        object.__setattr__(self, "metadata", frozen)

    def metadata_keys(self) -> List[str]:
        return [item["key"] for item in self.metadata]

    def metadata_value(self, key: str) -> str:
        for item in self.metadata:
            if item["key"] == key:
                return item["value"]
        raise KeyError(f"Template '{self.template_id}' has no metadata key '{key}'")


class TemplateRegistry:
    """
    Read-only collection of patch test templates keyed by template id.
    """

    def __init__(self, templates: Mapping[str, PatchTestTemplate]):
        self._templates = MappingProxyType(dict(templates))

    def get(self, template_id: str) -> PatchTestTemplate:
        try:
            return self._templates[template_id]
        except KeyError:
            raise KeyError(f"Unknown patch test template '{template_id}'") from None

    def ids(self) -> List[str]:
        return list(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __iter__(self) -> Iterator[PatchTestTemplate]:
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)


def _common_metadata() -> List[MetadataItem]:
    # Inventory and guest policies are switched off so only patching runs.
    return [
        build_metadata_item("enable-osconfig", "true"),
        build_metadata_item("osconfig-disabled-features", "guestpolicies,osinventory"),
    ]


def _linux_template(
    template_id: str,
    install_agent: List[str],
    assert_timeout: timedelta,
    state_mutation=None,
) -> PatchTestTemplate:
    script = compose_startup_script(
        PatchScriptLibrary.linux_record_boot(),
        install_agent,
        PatchScriptLibrary.linux_local_pre_patch_script(),
        state_mutation,
    )
    return PatchTestTemplate(
        template_id=template_id,
        metadata=tuple(
            [build_metadata_item(LINUX_STARTUP_KEY, script)] + _common_metadata()
        ),
        assert_timeout=assert_timeout,
        machine_type="e2-medium",
    )


def _windows_template(agent_repo: str) -> PatchTestTemplate:
    script = compose_startup_script(
        PatchScriptLibrary.windows_record_boot(),
        PatchScriptLibrary.install_agent_googet(agent_repo),
        PatchScriptLibrary.windows_local_post_patch_script(),
    )
    specialize = (
        SCRIPT_SEPARATOR.join(PatchScriptLibrary.windows_set_wsus()) + SCRIPT_SEPARATOR
    )
    return PatchTestTemplate(
        template_id="windows",
        metadata=tuple(
            [
                build_metadata_item(WINDOWS_SPECIALIZE_KEY, specialize),
                build_metadata_item(WINDOWS_STARTUP_KEY, script),
            ]
            + _common_metadata()
        ),
        assert_timeout=timedelta(minutes=60),
        machine_type="e2-standard-4",
    )


def build_template_registry(agent_repo: str = "stable") -> TemplateRegistry:
    """
    Build the registry of patch test templates.

    Args:
        agent_repo: Agent package channel to install from

    Returns:
        TemplateRegistry: Templates for Windows, apt, apt-downgrade,
        EL7/8/9 and SUSE

    Raises:
        ValueError: If agent_repo is not a known channel
    """
    if agent_repo not in AGENT_REPOS:
        raise ValueError(
            f"Unknown agent repo '{agent_repo}'. Must be one of: {', '.join(AGENT_REPOS)}"
        )

    library = PatchScriptLibrary
    templates: Dict[str, PatchTestTemplate] = {
        "windows": _windows_template(agent_repo),
        "apt": _linux_template(
            "apt", library.install_agent_deb(agent_repo), timedelta(minutes=10)
        ),
        "apt-downgrade": _linux_template(
            "apt-downgrade",
            library.install_agent_deb(agent_repo),
            timedelta(minutes=10),
            state_mutation=library.apt_downgrade_state(),
        ),
        "suse": _linux_template(
            "suse", library.install_agent_suse(agent_repo), timedelta(minutes=15)
        ),
    }
    for major in (7, 8, 9):
        templates[f"el{major}"] = _linux_template(
            f"el{major}",
            library.install_agent_el(major, agent_repo),
            timedelta(minutes=15),
        )

    pulumi.log.debug(
        f"Built {len(templates)} patch test templates from agent repo '{agent_repo}'"
    )
    return TemplateRegistry(templates)
