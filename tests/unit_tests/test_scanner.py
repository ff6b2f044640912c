from site_deploy.models import ImageReference
from site_deploy.scanner import VulnerabilityScanner

IMAGE = ImageReference("registry.example.com", "app-image", "dev-9")


def test_scan_command(fake_subprocess):
    VulnerabilityScanner(severity="CRITICAL").scan(IMAGE)

    assert fake_subprocess.commands == [[
        "trivy", "image", "--exit-code", "1", "--severity", "CRITICAL", "--no-progress",
        "registry.example.com/app-image:dev-9",
    ]]


def test_clean_scan_passes(fake_subprocess):
    result = VulnerabilityScanner().scan(IMAGE)

    assert result.passed
    assert result.image == IMAGE.uri


def test_findings_are_returned_not_raised(fake_subprocess):
    fake_subprocess.set_result(["trivy"], returncode=1, stdout="CVE-2024-0001 HIGH openssl")

    result = VulnerabilityScanner().scan(IMAGE)

    assert not result.passed
    assert result.exit_code == 1
    assert "CVE-2024-0001" in result.output


def test_missing_scanner_is_a_failed_result(fake_subprocess):
    fake_subprocess.missing.add("trivy")

    result = VulnerabilityScanner().scan(IMAGE)

    assert not result.passed
    assert result.exit_code == 127


def test_from_settings(make_settings):
    scanner = VulnerabilityScanner.from_settings(make_settings(scan_severity="MEDIUM,HIGH"))
    assert scanner.severity == "MEDIUM,HIGH"
