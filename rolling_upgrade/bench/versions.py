import re

from packaging.version import Version

_SNAPSHOT = re.compile(r"-snapshot$", re.IGNORECASE)


def parse_version(raw: str) -> Version:
    # 6.3.0-SNAPSHOT is the same version as 6.3.0 for upgrade detection;
    # -alpha1 / -beta2 / -rc1 are PEP 440 pre-releases already.
    return Version(_SNAPSHOT.sub("", str(raw).strip()))


def same_version(left: str, right: str) -> bool:
    return parse_version(left) == parse_version(right)
