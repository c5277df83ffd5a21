# -----------------------------------------------------------------------------
# Patch Test Matrix Validator
#
# Startup checks for the template registry, image catalog and suite
# bindings. A malformed matrix is a configuration defect, so every problem is
# collected and reported before any instance is generated.
# -----------------------------------------------------------------------------

from typing import Dict, Iterable, Mapping, Tuple

import pulumi
import regex

from image_catalog import FAMILIES, STAGES, ImageCatalog
from matrix_expander import SuiteBinding
from patch_templates import STARTUP_SCRIPT_KEYS, TemplateRegistry
from script_library import BOOT_COUNT_URL

IMAGE_PATTERN = regex.compile(
    r"^(projects/[a-z][-a-z0-9]*/global/images/(family/)?)?[a-z][-a-z0-9]*$"
)
INSTANCE_NAME_PATTERN = regex.compile(r"^[a-z0-9][-a-z0-9._]*(/[a-z0-9][-a-z0-9._]*)*$")


class MatrixValidator:
    """
    Validator for the patch test matrix.

    Checks templates, catalog subsets and suite bindings, collecting errors
    (which abort startup) and warnings (which are only logged).
    """

    def validate_matrix(
        self,
        registry: TemplateRegistry,
        catalog: ImageCatalog,
        suites: Mapping[str, Tuple[SuiteBinding, ...]],
        matrix_name: str = "patch",
    ) -> bool:
        """
        Validate a test matrix before it is expanded.

        Args:
            registry: Template registry
            catalog: Image catalog
            suites: Suite name to bindings
            matrix_name: Name used in log and error messages

        Returns:
            bool: True if validation passes

        Raises:
            ValueError: If validation fails with specific error details
        """
        try:
            errors = []
            warnings = []

            self._validate_templates(registry, errors)
            self._validate_catalog(catalog, errors, warnings)
            self._validate_suites(registry, catalog, suites, errors)
            self._validate_catalog_usage(catalog, suites, warnings)

            return self._process_validation_results(matrix_name, errors, warnings)

        except Exception as e:
            if isinstance(e, ValueError) and "failed validation" in str(e):
                raise
            error_message = (
                f"Error during validation of test matrix '{matrix_name}': {str(e)}"
            )
            pulumi.log.error(error_message)
            raise ValueError(error_message) from e

    def _process_validation_results(self, matrix_name, errors, warnings):
        """
        Report validation findings.

        Raises:
            ValueError: If validation errors exist
        """
        if errors:
            error_message = (
                f"Test matrix '{matrix_name}' failed validation:\n- "
                + "\n- ".join(errors)
            )
            pulumi.log.error(error_message)
            raise ValueError(error_message)

        if warnings:
            warning_message = (
                f"Test matrix '{matrix_name}' validation warnings:\n- "
                + "\n- ".join(warnings)
            )
            pulumi.log.warn(warning_message)

        pulumi.log.info(f"Validation passed for test matrix '{matrix_name}'")
        return True

    def _validate_templates(self, registry, errors):
        """
        Validate every template in the registry.

        Args:
            registry: Template registry
            errors: List to append any validation errors to
        """
        for template in registry:
            ref = f"Template '{template.template_id}'"

            if template.assert_timeout.total_seconds() <= 0:
                errors.append(f"{ref} has a non-positive assert timeout")

            if not template.machine_type:
                errors.append(f"{ref} has an empty machine type")

            keys = template.metadata_keys()
            duplicates = sorted({key for key in keys if keys.count(key) > 1})
            for key in duplicates:
                errors.append(f"{ref} has duplicate metadata key '{key}'")

            self._validate_startup_script(template, ref, keys, errors)

    def _validate_startup_script(self, template, ref, keys, errors):
        """
        Check that a template carries exactly one startup script and that it
        records boots.

        Args:
            template: Template to check
            ref: Template reference for error messages
            keys: Metadata keys of the template
            errors: List to append any validation errors to
        """
        startup_keys = [key for key in keys if key in STARTUP_SCRIPT_KEYS]
        if len(startup_keys) != 1:
            errors.append(
                f"{ref} must have exactly one startup script key "
                f"({' or '.join(STARTUP_SCRIPT_KEYS)}), found {len(startup_keys)}"
            )
            return

        script = template.metadata_value(startup_keys[0])
        if BOOT_COUNT_URL not in script:
            errors.append(f"{ref} startup script does not record the boot count")

    def _validate_catalog(self, catalog, errors, warnings):
        """
        Validate image identifiers and instance names in every subset.

        Args:
            catalog: Image catalog
            errors: List to append any validation errors to
            warnings: List to append any validation warnings to
        """
        for ref in catalog.refs():
            if ref.family not in FAMILIES:
                errors.append(f"Catalog subset '{ref}' has unknown family '{ref.family}'")
            if ref.stage not in STAGES:
                errors.append(f"Catalog subset '{ref}' has unknown stage '{ref.stage}'")

            images = catalog.subset(ref)
            if not images:
                warnings.append(f"Catalog subset '{ref}' is empty")
                continue

            for name, image in images.items():
                if not INSTANCE_NAME_PATTERN.match(name):
                    errors.append(
                        f"Catalog subset '{ref}' has invalid instance name '{name}'"
                    )
                if not image:
                    errors.append(
                        f"Catalog subset '{ref}' has an empty image for '{name}'"
                    )
                elif not IMAGE_PATTERN.match(image):
                    warnings.append(
                        f"Catalog subset '{ref}' has unrecognized image '{image}' for '{name}'"
                    )

    def _validate_suites(self, registry, catalog, suites, errors):
        """
        Validate suite bindings and name uniqueness within each suite.

        Args:
            registry: Template registry
            catalog: Image catalog
            suites: Suite name to bindings
            errors: List to append any validation errors to
        """
        for suite_name, bindings in suites.items():
            if not bindings:
                errors.append(f"Suite '{suite_name}' has no bindings")
                continue

            seen: Dict[str, str] = {}
            for binding in bindings:
                if binding.template_id not in registry:
                    errors.append(
                        f"Suite '{suite_name}' references unknown template "
                        f"'{binding.template_id}'"
                    )
                if binding.catalog_ref not in catalog:
                    errors.append(
                        f"Suite '{suite_name}' references unknown catalog subset "
                        f"'{binding.catalog_ref}'"
                    )
                    continue

                for name in catalog.subset(binding.catalog_ref):
                    origin = str(binding.catalog_ref)
                    if name in seen:
                        errors.append(
                            f"Suite '{suite_name}' has duplicate instance name "
                            f"'{name}' (from '{seen[name]}' and '{origin}')"
                        )
                    else:
                        seen[name] = origin

    def _validate_catalog_usage(self, catalog, suites, warnings):
        """
        Warn about catalog subsets that no suite runs against.

        Args:
            catalog: Image catalog
            suites: Suite name to bindings
            warnings: List to append any validation warnings to
        """
        used = {
            binding.catalog_ref
            for bindings in suites.values()
            for binding in bindings
        }
        for ref in catalog.refs():
            if ref not in used:
                warnings.append(f"Catalog subset '{ref}' is not used by any suite")


def validate_matrix(
    registry: TemplateRegistry,
    catalog: ImageCatalog,
    suites: Mapping[str, Iterable[SuiteBinding]],
    matrix_name: str = "patch",
) -> bool:
    """Validate a test matrix with a fresh MatrixValidator."""
    return MatrixValidator().validate_matrix(
        registry,
        catalog,
        {name: tuple(bindings) for name, bindings in suites.items()},
        matrix_name,
    )
