"""Transform capability: source artifact + parameters -> derived artifact."""

import os
from typing import Any, Dict

from PIL import Image

from imagejobs.errors import TransformError, UnsupportedKindError
from imagejobs.processing.kinds import KindRegistry, KindSpec


class ImageTransformer:
    """Dispatches to the registered kind handler.

    Synchronous on purpose: callers run it in a thread executor.
    """

    def __init__(self, registry: KindRegistry):
        self._registry = registry

    def spec_for(self, kind: Any) -> KindSpec:
        spec = self._registry.get(kind)
        if spec is None:
            raise UnsupportedKindError(str(getattr(kind, "value", kind)))
        return spec

    def transform(
        self,
        source_path: str,
        output_path: str,
        kind: Any,
        parameters: Dict[str, Any],
    ) -> str:
        spec = self.spec_for(kind)
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        try:
            return spec.transform(source_path, output_path, parameters)
        except FileNotFoundError as exc:
            # The input is gone for good; another attempt cannot help.
            raise TransformError(f"Source image missing: {source_path}", retryable=False) from exc
        except (OSError, ValueError, KeyError, Image.DecompressionBombError) as exc:
            raise TransformError(f"{type(exc).__name__}: {exc}") from exc
