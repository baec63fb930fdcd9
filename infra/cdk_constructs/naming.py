"""
Environment-scoped resource naming for the webhook handler stacks
"""

import hashlib
import re
from typing import Dict, Optional

SERVICE_SLUG = "intercom-webhook-handler"

# AWS name length limits per resource kind
MAX_NAME_LENGTHS = {
    "bucket": 63,
    "queue": 80,
    "function": 64,
    "role": 64,
    "api": 128,
    "stack": 128,
}
DEFAULT_MAX_LENGTH = 128

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_REPEATED_HYPHENS = re.compile(r"-{2,}")
# Letters and digits in hyphen-separated groups, so lowercasing is the only rewrite
_ENVIRONMENT = re.compile(r"[A-Za-z0-9]+(-[A-Za-z0-9]+)*")


class InvalidNameError(ValueError):
    """Raised when a name component is empty, not ASCII or not a valid environment"""


class NameCollisionError(ValueError):
    """Raised when two resources in one stack resolve to the same name"""


def _normalize(value: str, label: str) -> str:
    if not value or not value.strip():
        raise InvalidNameError(f"{label} must be a non-empty string")
    if not value.isascii():
        raise InvalidNameError(f"{label} must be ASCII: {value!r}")

    normalized = _INVALID_CHARS.sub("-", value.strip().lower())
    normalized = _REPEATED_HYPHENS.sub("-", normalized).strip("-")
    if not normalized:
        raise InvalidNameError(f"{label} has no usable characters: {value!r}")
    return normalized


def _normalize_environment(environment: str) -> str:
    if not environment:
        raise InvalidNameError("environment must be a non-empty string")
    if not _ENVIRONMENT.fullmatch(environment):
        raise InvalidNameError(
            f"environment must be letters and digits separated by single hyphens: "
            f"{environment!r}"
        )
    return environment.lower()


def _shorten(name: str, max_length: int) -> str:
    """Truncate to max_length keeping a digest of the full name as suffix"""
    if len(name) <= max_length:
        return name
    digest = hashlib.sha256(name.encode("ascii")).hexdigest()[:8]
    head = name[: max_length - len(digest) - 1].rstrip("-")
    return f"{head}-{digest}"


def generate_name(environment: str, base_name: str, kind: Optional[str] = None) -> str:
    """
    Build "<service-slug>-<environment>-<base_name>", lowercase and hyphen-delimited.

    The environment is only lowercased, so it must already be a valid name
    segment. The base name is normalized and any non-empty ASCII value is accepted.

    The result is a pure function of the inputs. When ``kind`` names a resource
    type with a length limit, longer names are shortened deterministically.
    """
    name = "-".join(
        [
            SERVICE_SLUG,
            _normalize_environment(environment),
            _normalize(base_name, "base name"),
        ]
    )
    return _shorten(name, MAX_NAME_LENGTHS.get(kind, DEFAULT_MAX_LENGTH))


class NameGenerator:
    """
    Issues names for a single environment and rejects duplicates
    """

    def __init__(self, environment: str) -> None:
        self.environment = _normalize_environment(environment)
        self._issued: Dict[str, str] = {}

    def generate_name(self, base_name: str, kind: Optional[str] = None) -> str:
        """Return the generated name for base_name, recording it as taken"""
        name = generate_name(self.environment, base_name, kind)
        if name in self._issued:
            raise NameCollisionError(
                f"Name {name!r} for {base_name!r} already issued for "
                f"{self._issued[name]!r}"
            )
        self._issued[name] = base_name
        return name

    @property
    def issued_names(self) -> Dict[str, str]:
        """Return generated name -> base name for every issued name"""
        return dict(self._issued)
