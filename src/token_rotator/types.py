import random
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

MAX_SEED = 2147483647


def random_seed() -> int:
    return random.randrange(MAX_SEED)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class GeneratedImage:
    """An image produced by one of the providers."""

    url: str
    model: str
    prompt: str
    aspect_ratio: str
    seed: Optional[int] = None
    steps: Optional[int] = None
    provider: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
