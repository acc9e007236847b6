"""Which formulae a reinstall touches.

The closure always starts from the requested formulae. It may grow with outdated
bottled dependencies and with installed formulae that depend on the closure and are
themselves outdated.
"""
from typing import Callable, Iterable, List, Optional, Sequence

from brewery.config import Config
from brewery.models import PackageLike

Prune = Callable[[PackageLike], bool]


def recursive_dependencies(package: PackageLike, prune: Prune) -> List[PackageLike]:
    """Walk ``package``'s dependency graph depth-first.

    A dependency for which ``prune`` returns True is dropped together with everything
    below it. Any other dependency is expanded first and then appended, so deeper
    dependencies come before the ones that need them. A dependency already on the
    current expansion path is skipped, which makes cycles terminate.
    """
    expanded: List[PackageLike] = []
    stack: List[str] = [str(package)]

    def expand(dependent: PackageLike) -> None:
        for dep in dependent.dependencies:
            name = str(dep)
            if name == str(dependent) or prune(dep):
                continue
            if name in stack:
                continue
            stack.append(name)
            expand(dep)
            stack.pop()
            expanded.append(dep)

    expand(package)
    return unique(expanded)


def outdated_bottled_prune(dep: PackageLike) -> bool:
    if not dep.dependencies:
        return True
    if not dep.outdated:
        return True
    return not dep.bottled


def unique(packages: Iterable[PackageLike]) -> List[PackageLike]:
    seen = set()
    result = []
    for package in packages:
        key = str(package)
        if key in seen:
            continue
        seen.add(key)
        result.append(package)
    return result


def compute_sized_formulae(
    targets: Sequence[PackageLike],
    installed: Optional[Callable[[], Iterable[PackageLike]]] = None,
    check_dependents: bool = True,
    config: Optional[Config] = None,
    prune: Prune = outdated_bottled_prune,
) -> List[PackageLike]:
    """Build the deduplicated list of formulae to size for ``targets``.

    ``installed`` is only called when installed dependents are scanned; without it
    the scan is skipped.
    """
    config = config or Config()
    sized: List[PackageLike] = []
    for package in targets:
        sized.append(package)
        if check_dependents and package.dependencies:
            sized.extend(recursive_dependencies(package, prune))

    if check_dependents and installed is not None and not config.no_installed_dependents_check:
        names = {str(p) for p in sized}
        sized.extend(
            candidate for candidate in installed()
            if candidate.outdated and any(str(dep) in names for dep in candidate.dependencies)
        )

    return unique(sized)
