# wincompat/semver/semver.py
from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Callable, Iterable, Literal, TypeVar

__all__ = [
    "SemVer",
    "SemVerComparator",
    "SemVerRequirement",
    "parseSemVer",
    "parseSemVerRequirement",
    "versionSatisfies",
    "pickBest",
    "sortNewestFirst",
]



_SUFFIX_RE = re.compile(
    r"^(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_NUMERIC_RE = re.compile(r"0|[1-9]\d*")

ComparatorOp = Literal["<", "<=", ">", ">=", "=="]

_OPERATORS: dict[str, Callable[[object, object], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}

T = TypeVar("T")



@total_ordering
@dataclass(frozen=True, eq=False)
class SemVer:
    """
    Semantic version of an overlay release.

    Ordering is numeric on (major, minor, patch); a pre-release sorts below
    its release, and build metadata never takes part in comparison.
    """
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def _sortKey(self) -> tuple:
        # Numeric identifiers rank below alphanumeric ones
        preKey = tuple(
            (0, int(ident), "") if ident.isdigit() else (1, 0, ident)
            for ident in self.prerelease
        )
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, preKey)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._sortKey() == other._sortKey()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._sortKey() < other._sortKey()

    def __hash__(self) -> int:
        return hash(self._sortKey())



def parseSemVer(raw: str) -> SemVer:
    """
    Parse a version string into SemVer.

    Upstream overlay projects are loose about versions, so short forms are accepted:
        "2"             -> 2.0.0
        "2.1"           -> 2.1.0
        "v2.3.1"        -> 2.3.1
        "1.10.3-rc.1"
        "2.0.0+git.abc"

    Rejected: "", ".1", "1.", "1..3", "1.2.3.4", "01.2.3", "1.2.3-", "vv1"
    """
    if not isinstance(raw, str):
        raise TypeError(f"Version must be a string, got {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise ValueError("Version string cannot be empty or whitespace only")

    if text[0] == "v" and len(text) > 1 and text[1].isdigit():
        text = text[1:]

    cut = len(text)
    for sep in ("-", "+"):
        idx = text.find(sep)
        if idx != -1:
            cut = min(cut, idx)
    core, suffix = text[:cut], text[cut:]

    parts = core.split(".")
    if not 1 <= len(parts) <= 3 or any(not _NUMERIC_RE.fullmatch(part) for part in parts):
        raise ValueError(f"Invalid version {raw!r}")
    numbers = [int(part) for part in parts] + [0] * (3 - len(parts))

    mtch = _SUFFIX_RE.match(suffix)
    if not mtch:
        raise ValueError(f"Invalid pre-release or build suffix in version {raw!r}")
    prerelease = mtch.group("prerelease")
    build = mtch.group("build")
    if prerelease is not None:
        for ident in prerelease.split("."):
            if ident.isdigit() and not _NUMERIC_RE.fullmatch(ident):
                raise ValueError(f"Numeric pre-release identifier {ident!r} has a leading zero in {raw!r}")

    return SemVer(
        major=numbers[0],
        minor=numbers[1],
        patch=numbers[2],
        prerelease=tuple(prerelease.split(".")) if prerelease else (),
        build=tuple(build.split(".")) if build else (),
    )



@dataclass(frozen=True)
class SemVerComparator:
    operator: ComparatorOp
    version: SemVer

    def matches(self, version: SemVer) -> bool:
        return _OPERATORS[self.operator](version, self.version)



@dataclass(frozen=True)
class SemVerRequirement:
    # All comparators are AND-ed; an empty tuple matches everything
    comparators: tuple[SemVerComparator, ...] = ()

    def matches(self, version: SemVer) -> bool:
        return all(comp.matches(version) for comp in self.comparators)



def _caretUpper(version: SemVer) -> SemVer:
    # ^1.2.3 -> <2.0.0, ^0.2.3 -> <0.3.0, ^0.0.3 -> <0.0.4
    if version.major > 0:
        return SemVer(version.major + 1, 0, 0)
    if version.minor > 0:
        return SemVer(0, version.minor + 1, 0)
    return SemVer(0, 0, version.patch + 1)



def _tildeUpper(version: SemVer) -> SemVer:
    # ~1.2.3 -> <1.3.0, ~1 -> <2.0.0
    if version.minor > 0 or version.patch > 0:
        return SemVer(version.major, version.minor + 1, 0)
    return SemVer(version.major + 1, 0, 0)



def parseSemVerRequirement(raw: str | None) -> SemVerRequirement | None:
    """
    Parse a requirement string. Returns None for "no constraint".

        None, "", "*"       -> None
        "2.1"               -> == 2.1.0
        ">=1.10 <2"         -> >=1.10.0 AND <2.0.0
        "^2.1"              -> >=2.1.0 AND <3.0.0
        "~1.10.3"           -> >=1.10.3 AND <1.11.0
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise TypeError(f"Requirement must be a string or None, got {type(raw).__name__}")
    raw = raw.strip()
    if not raw or raw == "*":
        return None

    comparators: list[SemVerComparator] = []
    for token in raw.split():
        if token[0] in ("^", "~"):
            if len(token) == 1:
                raise ValueError(f"Missing version after {token[0]!r} in requirement {raw!r}")
            base = parseSemVer(token[1:])
            upper = _caretUpper(base) if token[0] == "^" else _tildeUpper(base)
            comparators.append(SemVerComparator(">=", base))
            comparators.append(SemVerComparator("<", upper))
            continue

        for candidate in ("<=", ">=", "==", "<", ">", "="):
            if token.startswith(candidate):
                versionPart = token[len(candidate):]
                if not versionPart:
                    raise ValueError(f"Missing version after operator {candidate!r} in requirement {raw!r}")
                op = "==" if candidate == "=" else candidate
                comparators.append(SemVerComparator(op, parseSemVer(versionPart)))  # type: ignore[arg-type]
                break
        else:
            comparators.append(SemVerComparator("==", parseSemVer(token)))

    return SemVerRequirement(tuple(comparators))



def versionSatisfies(version: SemVer, requirement: SemVerRequirement | None) -> bool:
    return requirement is None or requirement.matches(version)



def sortNewestFirst(candidates: Iterable[tuple[SemVer, T]]) -> list[tuple[SemVer, T]]:
    """Stable sort, highest version first."""
    return sorted(candidates, key=lambda pair: pair[0], reverse=True)



def pickBest(
    candidates: Iterable[tuple[SemVer, T]],
    requirement: SemVerRequirement | None,
) -> tuple[SemVer, T] | None:
    """
    Highest candidate satisfying `requirement`, or None.
    Ties keep the first candidate in input order.
    """
    best: tuple[SemVer, T] | None = None
    for version, payload in candidates:
        if not versionSatisfies(version, requirement):
            continue
        if best is None or version > best[0]:
            best = (version, payload)
    return best
