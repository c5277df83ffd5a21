# -----------------------------------------------------------------------------
# Patch Matrix Program
#
# Reads the stack configuration, validates the patch test matrix and exports
# every selected suite for the orchestrator stack.
# -----------------------------------------------------------------------------

from typing import Any, Dict, Iterable, List, Optional

import pulumi

from image_catalog import default_image_catalog
from patch_suites import PatchTestSuites
from patch_templates import build_template_registry
from validator import MatrixValidator

CONFIG_NAMESPACE = "osconfig-patch-e2e"


def build_suite_exports(
    agent_repo: str = "stable", suite_names: Optional[Iterable[str]] = None
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Expand the selected suites into exportable dictionaries.

    Every suite is expanded before anything is returned, so an unknown suite
    name fails the whole run.

    Args:
        agent_repo: Agent package channel to install from
        suite_names: Suites to expand, all suites when None

    Returns:
        Dict[str, List[Dict[str, Any]]]: Suite name to its test instances

    Raises:
        ValueError: If the matrix fails validation or agent_repo is unknown
        KeyError: If a suite name is unknown
    """
    registry = build_template_registry(agent_repo)
    catalog = default_image_catalog()
    suites = PatchTestSuites(registry, catalog)

    # Fail fast on a malformed matrix before anything is expanded
    MatrixValidator().validate_matrix(registry, catalog, suites.bindings)

    if suite_names is None:
        suite_names = suites.suite_names()

    exports = {}
    for suite_name in suite_names:
        instances = suites.select(suite_name)
        pulumi.log.info(
            f"Suite '{suite_name}' expanded into {len(instances)} test instances"
        )
        exports[suite_name] = [instance.to_dict() for instance in instances]
    return exports


def run(config=None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Export the patch test matrix from the stack configuration.

    Args:
        config: Configuration source, the project's pulumi.Config by default

    Returns:
        Dict[str, List[Dict[str, Any]]]: The exported suites
    """
    config = config or pulumi.Config(CONFIG_NAMESPACE)
    agent_repo = config.get("agentRepo") or "stable"
    suite_names = config.get_object("suites")

    try:
        exports = build_suite_exports(agent_repo, suite_names)
    except (KeyError, ValueError) as e:
        pulumi.log.error(f"Could not build the patch test matrix: {str(e)}")
        raise

    for suite_name, instances in exports.items():
        pulumi.export(suite_name, instances)
    return exports
