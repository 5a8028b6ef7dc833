"""Host tool wrappers (adb/emulator, sdkmanager/avdmanager, xcrun simctl)."""
