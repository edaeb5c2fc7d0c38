"""
O2 Gateway — Backend Translators
================================
Pure, deterministic mappings between backend-native entity shapes and
the canonical O2-IMS / O2-DMS model. One module per backend family.
"""
