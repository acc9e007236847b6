from typing import Iterable

from brewery.models import PackageLike, SizeSummary

UNITS = [(1_073_741_824, "GB"), (1_048_576, "MB"), (1_024, "KB")]


def disk_usage_readable(size_in_bytes: int) -> str:
    size: float = size_in_bytes
    unit = "B"
    for threshold, name in UNITS:
        if abs(size_in_bytes) >= threshold:
            size = size_in_bytes / threshold
            unit = name
            break

    if int(size * 10) % 10 == 0:
        return f"{int(size)}{unit}"
    return f"{size:.1f}{unit}"


def compute_total_sizes(sized_formulae: Iterable[PackageLike], verbose_fetch: bool = False) -> SizeSummary:
    """Sum bottle download, installed and net sizes.

    Fetch errors propagate; a partial total is never returned.
    """
    download = installed = net = 0
    for formula in sized_formulae:
        bottle = formula.bottle
        if bottle is None:
            continue

        bottle.fetch_tab(quiet=not verbose_fetch)
        if bottle.bottle_size is not None:
            download += int(bottle.bottle_size)
        if bottle.installed_size is not None:
            installed += int(bottle.installed_size)

        kegs = formula.installed_kegs
        if not kegs:
            continue
        kegs_size = sum(int(keg.disk_usage) for keg in kegs)
        if bottle.installed_size is not None:
            net += int(bottle.installed_size) - kegs_size

    return SizeSummary(download=download, installed=installed, net=net)
