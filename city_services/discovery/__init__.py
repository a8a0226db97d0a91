"""Discovery package for deployable department enumeration."""

from .scanner import RegistryScanner, RegistryScanResult

__all__ = ["RegistryScanner", "RegistryScanResult"]
