"""Raspberry Pi kiosk image builder.

Takes an upstream Raspberry Pi OS image and turns it into the kiosk image:
- verified download with a local cache
- grown root partition, pinned disk identifier
- skeleton/custom overlays and a chrooted provisioning script
- zeroed free space and xz compression, named after `git describe`
"""

__all__ = []
