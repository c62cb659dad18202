"""kubectl wrapper"""

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from hetzkube.system import shell

ADMIN_KUBECONFIG = "/etc/kubernetes/admin.conf"


class Kubectl:
    """Run kubectl against the local cluster"""

    def __init__(self, kubeconfig: Optional[str] = None):
        if kubeconfig is None and Path(ADMIN_KUBECONFIG).exists():
            kubeconfig = ADMIN_KUBECONFIG
        self.kubeconfig = kubeconfig

    def _base(self) -> List[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        return cmd

    def run(self, args: Sequence[str], check: bool = False, input: Optional[str] = None) -> subprocess.CompletedProcess:
        """Execute kubectl with ``args``"""
        return shell.run_command(self._base() + list(args), check=check, input=input)

    def output(self, args: Sequence[str]) -> str:
        """Combined output of a kubectl call, regardless of exit code"""
        return shell.output(self.run(args))

    def jsonpath(self, resource: Sequence[str], expr: str, namespace: Optional[str] = None) -> Optional[str]:
        """``kubectl get <resource> -o jsonpath=<expr>``; None when the call fails"""
        args = ["get"] + list(resource)
        if namespace:
            args += ["-n", namespace]
        args += ["-o", f"jsonpath={expr}"]
        result = self.run(args)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        return self.run(args).returncode == 0

    def apply_manifest(self, manifest: str) -> subprocess.CompletedProcess:
        """Apply manifest text via stdin"""
        return self.run(["apply", "-f", "-"], input=manifest)

    def delete(self, kind: str, names: Sequence[str], namespace: Optional[str] = None) -> None:
        args = ["delete", kind] + list(names)
        if namespace:
            args += ["-n", namespace]
        self.run(args + ["--ignore-not-found"])

    def logs(self, selector: str, namespace: str = "kube-system", tail: int = 50) -> str:
        return self.output(["logs", "-n", namespace, "-l", selector, f"--tail={tail}"])

    def cluster_reachable(self) -> bool:
        return self.run(["cluster-info"]).returncode == 0
