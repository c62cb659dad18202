"""Tests for certificate inspection and kubelet cert regeneration"""

from hetzkube.system import certs

OPENSSL_OUT = """\
notBefore=Jan  1 00:00:00 2026 GMT
notAfter=Jan  1 00:00:00 2027 GMT
subject=CN = cp-1@1700000000
X509v3 Subject Alternative Name:
    DNS:cp-1, IP Address:10.0.0.10
"""


def test_missing_kubelet_cert(tmp_path):
    assert certs.check_kubelet_cert("10.0.0.10", tmp_path / "kubelet.crt") == 1


def test_inspect(fake_shell, tmp_path):
    fake_shell.respond(["openssl", "-dates"], stdout=OPENSSL_OUT)
    info = certs.inspect(tmp_path / "kubelet.crt")
    assert info.not_after == "Jan  1 00:00:00 2027 GMT"
    assert info.subject == "CN = cp-1@1700000000"
    assert "IP Address:10.0.0.10" in info.sans_text
    assert not info.expiring
    assert fake_shell.ran("-checkend", "2592000")


def test_kubelet_cert_ok(fake_shell, tmp_path):
    cert = tmp_path / "kubelet.crt"
    cert.write_text("pem")
    fake_shell.respond(["openssl", "-dates"], stdout=OPENSSL_OUT)
    assert certs.check_kubelet_cert("10.0.0.10", cert) == 0


def test_kubelet_cert_missing_san_and_expiring(fake_shell, tmp_path):
    cert = tmp_path / "kubelet.crt"
    cert.write_text("pem")
    fake_shell.respond(["openssl", "-dates"], stdout=OPENSSL_OUT)
    fake_shell.respond(["openssl", "-checkend"], returncode=1, stdout="Certificate will expire")
    assert certs.check_kubelet_cert("10.0.0.99", cert) == 2


def test_unreadable_cert(fake_shell, tmp_path):
    cert = tmp_path / "apiserver.crt"
    cert.write_text("garbage")
    fake_shell.respond(["openssl", "-dates"], returncode=1, stderr="unable to load certificate")
    assert certs.check_apiserver_cert(cert) == 1


def test_regenerate_kubelet_certs(fake_shell, tmp_path):
    pki = tmp_path / "pki"
    pki.mkdir()
    for name in ("kubelet-client-current.pem", "kubelet.crt", "kubelet.key", "kubelet-client-2026.pem"):
        (pki / name).write_text(name)
    fake_shell.respond(["systemctl", "is-active", "kubelet"], stdout="active\n")

    assert certs.regenerate_kubelet_certs(pki) is True

    assert sorted(p.name for p in pki.iterdir()) == ["kubelet-client-2026.pem"]
    backups = [p for p in tmp_path.iterdir() if p.name.startswith("pki.backup.")]
    assert len(backups) == 1
    assert (backups[0] / "kubelet.crt").read_text() == "kubelet.crt"
    assert fake_shell.ran("systemctl", "restart", "kubelet")


def test_regenerate_kubelet_not_active(fake_shell, tmp_path):
    pki = tmp_path / "pki"
    pki.mkdir()
    fake_shell.respond(["systemctl", "is-active", "kubelet"], returncode=3, stdout="failed\n")
    assert certs.regenerate_kubelet_certs(pki) is False
