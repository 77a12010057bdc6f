"""Feed domain exports."""

from . import policy, ranking, service, tags  # noqa: F401
from .policy import DEFAULT_POLICY, RankingPolicy  # noqa: F401
