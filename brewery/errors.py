from typing import List


class BreweryError(Exception):
    """Base class for errors the CLI reports and exits on."""


class MetadataError(BreweryError):
    pass


class ChecksumError(BreweryError):
    pass


class BottleUnavailableError(BreweryError):
    pass


class UnsupportedBuildError(BreweryError):
    pass


class MigrationError(BreweryError):
    pass


class BuildFlagsError(BreweryError):
    """Source build flags were given but no developer toolchain is installed."""

    def __init__(self, flags: List[str], bottled: bool = True) -> None:
        self.flags = flags
        self.bottled = bottled
        flag_text = ", ".join(flags)
        message = (
            f"The following {'flag requires' if len(flags) == 1 else 'flags require'} "
            f"a compiler and make to be installed: {flag_text}"
        )
        if bottled:
            message += f"\nAll requested formulae have bottles; run again without {flag_text}."
        super().__init__(message)
