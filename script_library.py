# -----------------------------------------------------------------------------
# Patch Test Script Library
#
# Startup-script fragments attached to OS patch test VMs. Each fragment is
# returned as a list of lines; compose_startup_script joins them in the order
# the patch assertions rely on.
# -----------------------------------------------------------------------------

from typing import List, Optional

SCRIPT_SEPARATOR = "\n"

GUEST_ATTRIBUTES_URL = (
    "http://metadata.google.internal/computeMetadata/v1/instance/"
    "guest-attributes/osconfig_tests"
)
BOOT_COUNT_URL = f"{GUEST_ATTRIBUTES_URL}/boot_count"
PRE_STEP_URL = f"{GUEST_ATTRIBUTES_URL}/pre_step_ran"
POST_STEP_URL = f"{GUEST_ATTRIBUTES_URL}/post_step_ran"

AGENT_PACKAGE = "google-osconfig-agent"
AGENT_REPOS = ("stable", "staging", "unstable")
RETRY_BACKOFF_SECONDS = 1


class PatchScriptLibrary:
    """
    Library of script fragments for OS patch test instances.

    Fragments are opaque to the matrix generator. They are grouped here by
    purpose: recording reboots, installing the OS Config agent, dropping a
    local pre/post patch hook on disk, and forcing a downgrade candidate.
    """

    @staticmethod
    def windows_record_boot() -> List[str]:
        """
        Generate PowerShell that increments the boot_count guest attribute.

        The PUT is retried every second until the metadata server accepts
        it, so a reboot is never lost to a transient failure.

        Returns:
            List[str]: PowerShell script lines
        """
        return [
            "while ($true) {",
            f"  $uri = '{BOOT_COUNT_URL}'",
            '  $old = Invoke-RestMethod -Method GET -Uri $uri -Headers @{"Metadata-Flavor" = "Google"}',
            "  $new = $old+1",
            "  try {",
            '    Invoke-RestMethod -Method PUT -Uri $uri -Headers @{"Metadata-Flavor" = "Google"} -Body $new -ErrorAction Stop',
            "  }",
            "  catch {",
            "    Write-Output $_.Exception.Message",
            f"    Start-Sleep {RETRY_BACKOFF_SECONDS}",
            "    continue",
            "  }",
            "  break",
            "}",
        ]

    @staticmethod
    def linux_record_boot() -> List[str]:
        """
        Generate shell that increments the boot_count guest attribute.

        Returns:
            List[str]: Shell script lines
        """
        return [
            f"uri={BOOT_COUNT_URL}",
            "while true; do",
            '  old=$(curl $uri -H "Metadata-Flavor: Google" -f)',
            "  new=$(($old + 1))",
            '  if curl -X PUT --data "${new}" $uri -H "Metadata-Flavor: Google" -f; then',
            "    break",
            "  fi",
            f"  sleep {RETRY_BACKOFF_SECONDS}",
            "done",
        ]

    @staticmethod
    def windows_set_wsus() -> List[str]:
        """
        Generate the sysprep specialize script that points Windows Update at
        the test WSUS server when it answers a ping.

        Returns:
            List[str]: PowerShell script lines
        """
        return [
            "$wu_server = '192.168.0.2'",
            "$windows_update_path = 'HKLM:\\SOFTWARE\\Policies\\Microsoft\\Windows\\WindowsUpdate'",
            '$windows_update_au_path = "$windows_update_path\\AU"',
            "if (Test-Connection $wu_server -Count 1 -ErrorAction SilentlyContinue) {",
            "  if (-not (Test-Path $windows_update_path -ErrorAction SilentlyContinue)) {",
            '    New-Item -Path $windows_update_path -Value ""',
            '    New-Item -Path $windows_update_au_path -Value ""',
            "  }",
            '  Set-ItemProperty -Path $windows_update_path -Name WUServer -Value "http://${wu_server}:8530"',
            '  Set-ItemProperty -Path $windows_update_path -Name WUStatusServer -Value "http://${wu_server}:8530"',
            "  Set-ItemProperty -Path $windows_update_au_path -Name UseWUServer -Value 1",
            "}",
        ]

    @staticmethod
    def install_agent_googet(repo: str) -> List[str]:
        """
        Generate PowerShell that installs the agent from a GooGet repository.

        Args:
            repo: Agent package channel (stable, staging or unstable)

        Returns:
            List[str]: PowerShell script lines
        """
        return [
            "Stop-Service google_osconfig_agent -ErrorAction SilentlyContinue",
            f"googet addrepo {AGENT_PACKAGE}-{repo} https://packages.cloud.google.com/yuck/repos/{AGENT_PACKAGE}-{repo}",
            f"googet -noconfirm remove {AGENT_PACKAGE}",
            f"googet -noconfirm install {AGENT_PACKAGE}",
            "Start-Service google_osconfig_agent",
        ]

    @staticmethod
    def install_agent_deb(repo: str) -> List[str]:
        """
        Generate shell that installs the agent with apt.

        Args:
            repo: Agent package channel

        Returns:
            List[str]: Shell script lines
        """
        return [
            "systemctl stop google-osconfig-agent",
            "export DEBIAN_FRONTEND=noninteractive",
            f"echo \"deb http://packages.cloud.google.com/apt {AGENT_PACKAGE}-$(lsb_release -cs)-{repo} main\" >> /etc/apt/sources.list",
            "curl https://packages.cloud.google.com/apt/doc/apt-key.gpg | apt-key add -",
            "while ! apt-get update; do sleep 10; done",
            f"apt-get install -y {AGENT_PACKAGE}",
            "systemctl start google-osconfig-agent",
        ]

    @staticmethod
    def install_agent_el(major: int, repo: str) -> List[str]:
        """
        Generate shell that installs the agent on an Enterprise Linux host.

        EL7 uses yum; EL8 and later use dnf.

        Args:
            major: Enterprise Linux major version (7, 8 or 9)
            repo: Agent package channel

        Returns:
            List[str]: Shell script lines
        """
        package_manager = "yum" if major < 8 else "dnf"
        return [
            "systemctl stop google-osconfig-agent",
            "cat > /etc/yum.repos.d/google-osconfig-agent.repo <<EOM",
            "[google-osconfig-agent]",
            "name=Google OSConfig Agent Repository",
            f"baseurl=https://packages.cloud.google.com/yum/repos/{AGENT_PACKAGE}-el{major}-{repo}",
            "enabled=1",
            "gpgcheck=0",
            "repo_gpgcheck=0",
            "EOM",
            f"while ! {package_manager} -y remove {AGENT_PACKAGE}; do sleep 10; done",
            f"while ! {package_manager} -y install {AGENT_PACKAGE}; do sleep 10; done",
            "systemctl start google-osconfig-agent",
        ]

    @staticmethod
    def install_agent_suse(repo: str) -> List[str]:
        """
        Generate shell that installs the agent with zypper.

        Args:
            repo: Agent package channel

        Returns:
            List[str]: Shell script lines
        """
        return [
            "systemctl stop google-osconfig-agent",
            f"zypper -n addrepo --refresh --no-gpgcheck https://packages.cloud.google.com/yum/repos/{AGENT_PACKAGE}-el8-{repo} {AGENT_PACKAGE}",
            "while ! zypper -n refresh; do sleep 10; done",
            f"zypper -n remove {AGENT_PACKAGE}",
            f"zypper -n install {AGENT_PACKAGE}",
            "systemctl start google-osconfig-agent",
        ]

    @staticmethod
    def windows_local_post_patch_script() -> List[str]:
        """
        Generate PowerShell that writes a local post-patch hook to disk.

        Returns:
            List[str]: PowerShell script lines
        """
        return [
            f"$uri = '{POST_STEP_URL}'",
            "New-Item -Path . -Name \"windows_local_post_patch_script.ps1\" -ItemType \"file\" "
            "-Value \"Invoke-RestMethod -Method PUT -Uri $uri -Headers @{'Metadata-Flavor' = 'Google'} -Body 1\"",
        ]

    @staticmethod
    def linux_local_pre_patch_script() -> List[str]:
        """
        Generate shell that writes a local pre-patch hook to disk.

        Returns:
            List[str]: Shell script lines
        """
        return [
            f"echo 'curl -X PUT --data \"1\" {PRE_STEP_URL} -H \"Metadata-Flavor: Google\"' >> ./linux_local_pre_patch_script.sh",
            "chmod +x ./linux_local_pre_patch_script.sh",
        ]

    @staticmethod
    def apt_downgrade_state() -> List[str]:
        """
        Generate shell that pins an older sudo from a Debian snapshot so the
        patch run always has a downgrade to apply.

        Returns:
            List[str]: Shell script lines
        """
        return [
            "echo 'deb [trusted=yes check-valid-until=no] http://snapshot.debian.org/archive/debian/20190801T025637Z/ buster main' >> /etc/apt/sources.list",
            "echo 'Package: sudo' >> /etc/apt/preferences",
            "echo 'Pin: version 1.8.27-1' >> /etc/apt/preferences",
            "echo 'Pin-priority: 9999' >> /etc/apt/preferences",
        ]


def compose_startup_script(
    record_boot: List[str],
    install_agent: List[str],
    local_hook: List[str],
    state_mutation: Optional[List[str]] = None,
) -> str:
    """
    Join script fragments into a single startup payload.

    Fragments are always emitted in this order: boot recorder, agent install,
    local hook, then the optional state mutation.

    Args:
        record_boot: Boot-count recorder lines
        install_agent: Agent install lines
        local_hook: Local pre/post patch hook lines
        state_mutation: Optional lines that set up a downgrade scenario

    Returns:
        str: The composed script
    """
    fragments = [record_boot, install_agent, local_hook]
    if state_mutation is not None:
        fragments.append(state_mutation)

    lines: List[str] = []
    for fragment in fragments:
        lines.extend(fragment)
    return SCRIPT_SEPARATOR.join(lines) + SCRIPT_SEPARATOR
