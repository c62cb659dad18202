"""Node-level operations: shell-outs to ip, apt, kubeadm, iptables and friends."""
