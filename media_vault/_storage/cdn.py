"""CloudFront cache invalidation."""

import time
from typing import Any, List, Optional, Sequence

import aioboto3

from .s3 import translate_errors

# CloudFront accepts at most 3,000 paths per invalidation batch.
MAX_PATHS_PER_INVALIDATION = 3000
WILDCARD_PATH = "/*"


def build_invalidation_paths(keys: Sequence[str]) -> List[str]:
    """Turn object keys into invalidation paths.

    More than ``MAX_PATHS_PER_INVALIDATION`` keys collapse into a single
    wildcard path.
    """
    if len(keys) > MAX_PATHS_PER_INVALIDATION:
        return [WILDCARD_PATH]
    return [key if key.startswith("/") else f"/{key}" for key in keys]


class CloudFrontInvalidator:
    """Create invalidations for one CloudFront distribution."""

    def __init__(
        self,
        distribution_id: str,
        region: str = "us-east-1",
        session: Optional[Any] = None,
        caller_prefix: str = "media-vault",
    ):
        self.distribution_id = distribution_id
        self.region = region
        self.session = session or aioboto3.Session()
        self.caller_prefix = caller_prefix

    async def invalidate(self, paths: Sequence[str]) -> Optional[str]:
        """Invalidate ``paths`` and return the invalidation id.

        Args:
            paths: Object keys or CloudFront paths; ``["/*"]`` for everything

        Returns:
            Invalidation id, or None when nothing was requested or the
            response carries no id
        """
        if not paths:
            return None

        items = build_invalidation_paths(paths)
        suffix = "-wildcard" if items == [WILDCARD_PATH] and len(paths) > 1 else ""
        batch = {
            "Paths": {"Quantity": len(items), "Items": items},
            "CallerReference": f"{self.caller_prefix}{suffix}-{int(time.time() * 1000)}",
        }

        with translate_errors(f"Invalidating distribution {self.distribution_id}"):
            async with self.session.client("cloudfront", region_name=self.region) as cloudfront:
                response = await cloudfront.create_invalidation(
                    DistributionId=self.distribution_id,
                    InvalidationBatch=batch,
                )

        return (response.get("Invalidation") or {}).get("Id")

    async def invalidate_all(self) -> Optional[str]:
        return await self.invalidate([WILDCARD_PATH])
