"""
The `packaging` sub-package contains the stages of a universal package build.

This includes:
- Resolving each input (URL, archive, disk image or .app) to a bundle on disk.
- Validating the two bundles against their architecture slots and each other.
- Synthesizing the dual-payload installer with pkgbuild and productbuild.
"""
