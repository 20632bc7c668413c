# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release subsystem: environment validation, source acquisition, Composer
install, package organization, integrity manifest, archives and signatures.

`pipeline.build_release` runs them in order.
"""
