"""
ProvisionKit - provisions a mobile development toolchain on one machine.

Probes for the JDK, Node.js, the Android SDK and Appium, installs what is
missing and records their locations in the user's shell profile.
"""

__version__ = "0.1.0"
