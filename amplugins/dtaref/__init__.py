"""DTA_Refinery log handling: completion checks and mass-error statistics."""
