# -----------------------------------------------------------------------------
# OS Patch E2E Test Matrix
#
# Builds the patch test matrix and exports the selected suites so the
# orchestrator stack can provision one VM per test instance.
# -----------------------------------------------------------------------------

from patch_program import run

# Configuration is read from Pulumi.yaml and the stack settings
run()
