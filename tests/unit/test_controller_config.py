from pathlib import Path

from mtbroker.config import ControllerConfig, get_cluster_domain_name


def test_cluster_domain_from_resolv_conf(tmp_path: Path):
    resolv = tmp_path / "resolv.conf"
    resolv.write_text(
        "nameserver 10.96.0.10\n"
        "search default.svc.corp.example svc.corp.example corp.example\n"
        "options ndots:5\n"
    )

    assert get_cluster_domain_name(resolv) == "corp.example"


def test_cluster_domain_fallback(tmp_path: Path):
    assert get_cluster_domain_name(tmp_path / "missing") == "cluster.local"

    resolv = tmp_path / "resolv.conf"
    resolv.write_text("nameserver 1.1.1.1\n")
    assert get_cluster_domain_name(resolv) == "cluster.local"


def test_service_host():
    config = ControllerConfig(system_namespace="eventing", cluster_domain="cluster.local")

    assert config.service_host(config.ingress_service, config.system_namespace) == (
        "broker-ingress.eventing.svc.cluster.local"
    )
