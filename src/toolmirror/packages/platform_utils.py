"""Platform Classification Utilities.

This module maps the raw host triplets used by upstream package indexes
(e.g. ``x86_64-apple-darwin14``, ``arm-linux-gnueabihf``, ``i686-mingw32``)
onto the fixed set of platforms the mirror publishes.

Supported Platforms:
    - Windows: win32-x64 (win32-ia32 is recognised only as a fallback source)
    - macOS: darwin-x64, darwin-arm64
    - Linux: linux-x64, linux-arm64, linux-arm

Matching Rules:
    A host matches a rule when the lower-cased host contains at least one of
    the rule's arch keywords AND at least one of its OS keywords AND none of
    its exclude keywords. Rules are tried in table order and the first match
    wins, so a specific rule must come before a more general one that would
    also match (``arm64`` before ``arm``), and broad keywords carry exclude
    guards (``arm`` excludes ``aarch64``/``arm64``, ``x86`` excludes
    ``x86_64``).
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple


class PlatformError(Exception):
    """Raised when a platform identifier is not one the mirror supports."""

    pass


PlatformIdentifier = Literal[
    "win32-x64",
    "win32-ia32",
    "darwin-x64",
    "darwin-arm64",
    "linux-x64",
    "linux-arm64",
    "linux-arm",
]

# Every published (id, version) is expected on all of these.
CANONICAL_PLATFORMS: Tuple[PlatformIdentifier, ...] = (
    "win32-x64",
    "darwin-x64",
    "darwin-arm64",
    "linux-x64",
    "linux-arm64",
    "linux-arm",
)

# Platforms whose hosts can run another platform's binaries.
#   darwin-arm64 runs x64 binaries under Rosetta 2
#   win32-x64 runs ia32 binaries under WoW64
PLATFORM_FALLBACKS: Dict[PlatformIdentifier, PlatformIdentifier] = {
    "darwin-arm64": "darwin-x64",
    "win32-x64": "win32-ia32",
}


@dataclass(frozen=True)
class MatcherRule:
    """One row of the host classification table."""

    platform: PlatformIdentifier
    arch_keywords: Tuple[str, ...]
    os_keywords: Tuple[str, ...]
    exclude_keywords: Tuple[str, ...] = ()

    def matches(self, host: str) -> bool:
        """Check a lower-cased host string against this rule."""
        return (
            any(kw in host for kw in self.arch_keywords)
            and any(kw in host for kw in self.os_keywords)
            and not any(kw in host for kw in self.exclude_keywords)
        )


# Bump when rule order or keywords change; classification results depend on both.
MATCHER_TABLE_VERSION = 1

MATCHER_RULES: Tuple[MatcherRule, ...] = (
    # Windows
    MatcherRule(
        platform="win32-x64",
        arch_keywords=("x86_64", "x64", "amd64"),
        os_keywords=("mingw", "windows", "win32", "win64"),
    ),
    MatcherRule(
        platform="win32-ia32",
        arch_keywords=("i686", "i386", "x86", "ia32"),
        os_keywords=("mingw", "windows", "win32"),
        exclude_keywords=("x86_64",),
    ),
    # macOS
    MatcherRule(
        platform="darwin-arm64",
        arch_keywords=("arm64", "aarch64"),
        os_keywords=("darwin", "apple", "macos", "osx"),
    ),
    MatcherRule(
        platform="darwin-x64",
        arch_keywords=("x86_64", "x64", "amd64", "i386"),
        os_keywords=("darwin", "apple", "macos", "osx"),
    ),
    # Linux
    MatcherRule(
        platform="linux-arm64",
        arch_keywords=("arm64", "aarch64"),
        os_keywords=("linux",),
    ),
    MatcherRule(
        platform="linux-arm",
        arch_keywords=("arm", "armv6", "armv7", "armhf", "gnueabihf"),
        os_keywords=("linux",),
        exclude_keywords=("arm64", "aarch64"),
    ),
    MatcherRule(
        platform="linux-x64",
        arch_keywords=("x86_64", "x64", "amd64"),
        os_keywords=("linux",),
    ),
)


class PlatformClassifier:
    """Classifies upstream host triplets into canonical platforms.

    The rule table and fallback map are plain values so tests (or a future
    table version) can supply their own.
    """

    def __init__(
        self,
        rules: Tuple[MatcherRule, ...] = MATCHER_RULES,
        fallbacks: Optional[Dict[str, str]] = None,
    ):
        """Initialize classifier.

        Args:
            rules: Ordered matcher rules; first match wins
            fallbacks: Map of platform -> emulation-compatible platform
        """
        self.rules = rules
        self.fallbacks = dict(PLATFORM_FALLBACKS if fallbacks is None else fallbacks)

    def classify(self, host: Optional[str]) -> Optional[PlatformIdentifier]:
        """Classify a raw host string.

        Args:
            host: Upstream host triplet (e.g. "aarch64-apple-darwin20")

        Returns:
            Canonical platform identifier, or None for an unsupported host
        """
        if not host:
            return None

        host_lower = host.lower()
        for rule in self.rules:
            if rule.matches(host_lower):
                return rule.platform
        return None

    def fallback_for(self, platform: str) -> Optional[str]:
        """Get the emulation-compatible platform for ``platform``, if any."""
        return self.fallbacks.get(platform)

    @staticmethod
    def is_supported(platform: str) -> bool:
        """Check whether ``platform`` is one of the published platforms."""
        return platform in CANONICAL_PLATFORMS

    @staticmethod
    def validate(platform: str) -> str:
        """Return ``platform`` unchanged or raise PlatformError.

        Raises:
            PlatformError: If platform is not a canonical platform
        """
        if platform not in CANONICAL_PLATFORMS:
            raise PlatformError(
                f"Unsupported platform: {platform}. "
                + f"Supported platforms: {', '.join(CANONICAL_PLATFORMS)}"
            )
        return platform
