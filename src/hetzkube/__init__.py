"""hetzkube - bare-metal Kubernetes on Hetzner dedicated servers"""

__version__ = "0.1.0"
