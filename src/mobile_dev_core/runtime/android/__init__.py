"""Android runtime helpers.

``sdk`` locates the SDK and parses its manifests; ``controller`` drives
emulator instances through adb.
"""
