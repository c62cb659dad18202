"""Reachability checks between cluster nodes."""

import socket

import httpx

from hetzkube.system import shell


def ping(host: str, count: int = 2, wait: int = 3) -> bool:
    result = shell.run_command(["ping", "-c", str(count), "-W", str(wait), host], check=False)
    return result.returncode == 0


def tcp_open(host: str, port: int, timeout: float = 5.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def kubelet_healthz(ip: str, port: int = 10250, timeout: float = 5.0) -> str:
    """Body of the kubelet /healthz endpoint, or the connection error text.

    TLS verification is off: kubelet serving certs are usually self-signed.
    """
    try:
        response = httpx.get(f"https://{ip}:{port}/healthz", verify=False, timeout=timeout)
        return response.text
    except httpx.HTTPError as e:
        return str(e)


def kubelet_reachable(ip: str, port: int = 10250) -> bool:
    body = kubelet_healthz(ip, port)
    return "ok" in body or "Unauthorized" in body
