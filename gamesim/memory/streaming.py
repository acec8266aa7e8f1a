"""
Chunked, optionally compressed, priority-evicted storage for large result sets.
"""
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")


@dataclass
class MemoryConfig:
    """
    Settings of the streaming manager.

    Attributes:
        max_memory_mb: Byte budget for stored chunks, in MiB
        gc_threshold: Fraction of the budget above which chunks are evicted
        chunk_size: Items per chunk when a ResultProcessor splits a list
        max_cache_size: Maximum number of stored chunks
        enable_compression: Try to compress every stored chunk
        compression_ratio: Compressed form is kept only below original size * ratio
    """
    max_memory_mb: float = 512
    gc_threshold: float = 0.8
    chunk_size: int = 10_000
    max_cache_size: int = 100
    enable_compression: bool = True
    compression_ratio: float = 0.3

    @property
    def budget_bytes(self) -> float:
        return self.max_memory_mb * 1024 * 1024 * self.gc_threshold


class DataCompressor:
    """
    LZ77-style text compressor over the JSON form of a value.

    Back references are written as "<distance,length>" into a 255-character
    window; a literal "<" is written as "<<".
    """
    WINDOW = 255
    MIN_MATCH = 3
    MAX_MATCH = 255

    @classmethod
    def compress_string(cls, text: str) -> str:
        out: List[str] = []
        chains: Dict[str, List[int]] = {}
        i, n = 0, len(text)
        while i < n:
            best_len, best_dist = 0, 0
            key = text[i:i + cls.MIN_MATCH]
            if len(key) == cls.MIN_MATCH:
                for j in reversed(chains.get(key, ())):
                    if i - j > cls.WINDOW:
                        break
                    length = cls.MIN_MATCH
                    while (i + length < n and length < cls.MAX_MATCH
                           and text[j + length] == text[i + length]):
                        length += 1
                    if length > best_len:
                        best_len, best_dist = length, i - j
                        if length == cls.MAX_MATCH:
                            break
            step = best_len if best_len >= cls.MIN_MATCH else 1
            for k in range(i, min(i + step, n - cls.MIN_MATCH + 1)):
                chains.setdefault(text[k:k + cls.MIN_MATCH], []).append(k)
            if best_len >= cls.MIN_MATCH:
                out.append(f"<{best_dist},{best_len}>")
            else:
                out.append("<<" if text[i] == "<" else text[i])
            i += step
        return "".join(out)

    @staticmethod
    def decompress_string(data: str) -> str:
        result: List[str] = []
        i, n = 0, len(data)
        while i < n:
            ch = data[i]
            if ch != "<":
                result.append(ch)
                i += 1
                continue
            if i + 1 < n and data[i + 1] == "<":
                result.append("<")
                i += 2
                continue
            end = data.index(">", i)
            distance, length = (int(v) for v in data[i + 1:end].split(","))
            start = len(result) - distance
            for k in range(length):
                result.append(result[start + k])
            i = end + 1
        return "".join(result)

    @classmethod
    def compress(cls, value: Any) -> Dict[str, Any]:
        original = value if isinstance(value, str) else json.dumps(value)
        compressed = cls.compress_string(original)
        return {"compressed": compressed, "original_size": len(original),
                "compressed_size": len(compressed)}

    @classmethod
    def decompress(cls, compressed: str) -> Any:
        return json.loads(cls.decompress_string(compressed))


@dataclass
class DataChunk:
    id: str
    data: Any
    size: int
    priority: str
    compressed: bool = False
    access_count: int = 0


def estimate_size(data: Any) -> int:
    """Approximate footprint of a chunk as the length of its JSON form."""
    if isinstance(data, str):
        return len(data)
    try:
        return len(json.dumps(data))
    except (TypeError, ValueError):
        return 1024


class StreamingDataManager:
    """
    Keyed chunk store bounded by a byte budget and an entry-count ceiling.

    When either bound is exceeded, chunks are evicted lowest priority first
    and least recently used first within a priority.
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or MemoryConfig()
        self.chunks: "OrderedDict[str, DataChunk]" = OrderedDict()
        self.total_size = 0
        self.evictions = 0
        self.hits = 0
        self.misses = 0
        self.bytes_saved = 0

    def add_chunk(self, chunk_id: str, data: Any, priority: str = "medium") -> None:
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown chunk priority: {priority!r}")
        if chunk_id in self.chunks:
            self.remove_chunk(chunk_id)

        size = estimate_size(data)
        stored, compressed = data, False
        if self.config.enable_compression:
            packed = DataCompressor.compress(data)
            if packed["compressed_size"] < packed["original_size"] * self.config.compression_ratio:
                stored, compressed = packed["compressed"], True
                self.bytes_saved += size - packed["compressed_size"]
                size = packed["compressed_size"]

        self.chunks[chunk_id] = DataChunk(chunk_id, stored, size, priority, compressed)
        self.total_size += size
        self._manage_memory(protect=chunk_id)

    def get_chunk(self, chunk_id: str) -> Any:
        chunk = self.chunks.get(chunk_id)
        if chunk is None:
            self.misses += 1
            return None
        self.hits += 1
        chunk.access_count += 1
        self.chunks.move_to_end(chunk_id)
        if chunk.compressed:
            return DataCompressor.decompress(chunk.data)
        return chunk.data

    def remove_chunk(self, chunk_id: str) -> bool:
        chunk = self.chunks.pop(chunk_id, None)
        if chunk is None:
            return False
        self.total_size -= chunk.size
        return True

    def __contains__(self, chunk_id: str) -> bool:
        return chunk_id in self.chunks

    def __len__(self):
        return len(self.chunks)

    def _eviction_candidate(self, protect: Optional[str]) -> Optional[str]:
        for priority in PRIORITIES:
            for chunk_id, chunk in self.chunks.items():
                if chunk.priority == priority and chunk_id != protect:
                    return chunk_id
        return None

    def _manage_memory(self, protect: Optional[str] = None) -> None:
        while (len(self.chunks) > self.config.max_cache_size
               or self.total_size > self.config.budget_bytes):
            victim = self._eviction_candidate(protect)
            if victim is None:
                logger.warning(f"Chunk {protect!r} alone exceeds the memory budget")
                break
            self.remove_chunk(victim)
            self.evictions += 1
            logger.debug(f"Evicted chunk {victim}")

    def memory_stats(self) -> Dict[str, Any]:
        return {
            "chunk_count": len(self.chunks),
            "total_size": self.total_size,
            "compressed_chunks": sum(c.compressed for c in self.chunks.values()),
            "bytes_saved": self.bytes_saved,
            "memory_pressure": self.total_size / (self.config.max_memory_mb * 1024 * 1024),
            "evictions": self.evictions,
            "hits": self.hits,
            "misses": self.misses,
        }

    def clear(self) -> None:
        self.chunks.clear()
        self.total_size = 0


def _merge_counts(target: Dict[str, int], source: Dict[str, int]) -> None:
    for key, value in source.items():
        target[key] = target.get(key, 0) + value


class ResultProcessor:
    """
    Splits a list of partial run results into stored chunk summaries and
    re-aggregates them.

    Each partial result is a dict with optional keys "outcomes",
    "strategy_frequencies" (joint key -> count), "iterations" and
    "payoff_sums" / "payoff_sums_sq" (one entry per player).
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or MemoryConfig()
        self.store = StreamingDataManager(self.config)
        self.chunk_ids: List[str] = []

    def process_results(self, results: List[Dict[str, Any]],
                        on_progress: Optional[Callable[[float], None]] = None) -> Dict[str, Any]:
        total = len(results)
        size = max(1, self.config.chunk_size)
        for start in range(0, total, size):
            end = min(start + size, total)
            chunk_id = f"chunk_{start // size}"
            self.store.add_chunk(chunk_id, self._summarize(results[start:end], start // size), "high")
            self.chunk_ids.append(chunk_id)
            if on_progress is not None:
                on_progress(end / total)
        return {"chunks": list(self.chunk_ids), "total_results": total,
                "memory_stats": self.store.memory_stats()}

    @staticmethod
    def _summarize(chunk: List[Dict[str, Any]], index: int) -> Dict[str, Any]:
        summary = {"chunk_index": index, "size": len(chunk), "iterations": 0,
                   "outcomes": {}, "strategy_frequencies": {},
                   "payoff_sums": None, "payoff_sums_sq": None}
        for result in chunk:
            summary["iterations"] += result.get("iterations", 0)
            _merge_counts(summary["outcomes"], result.get("outcomes", {}))
            _merge_counts(summary["strategy_frequencies"], result.get("strategy_frequencies", {}))
            for key in ("payoff_sums", "payoff_sums_sq"):
                values = result.get(key)
                if values is None:
                    continue
                if summary[key] is None:
                    summary[key] = [0.0] * len(values)
                summary[key] = [a + b for a, b in zip(summary[key], values)]
        return summary

    def get_chunk_results(self, chunk_id: str) -> Any:
        return self.store.get_chunk(chunk_id)

    def aggregate_all_results(self) -> Dict[str, Any]:
        aggregated = {"total_results": 0, "iterations": 0, "outcomes": {},
                      "strategy_frequencies": {}, "payoff_sums": None, "payoff_sums_sq": None}
        for chunk_id in self.chunk_ids:
            data = self.store.get_chunk(chunk_id)
            if data is None:
                logger.warning(f"Chunk {chunk_id} was evicted before aggregation")
                continue
            aggregated["total_results"] += data["size"]
            aggregated["iterations"] += data["iterations"]
            _merge_counts(aggregated["outcomes"], data["outcomes"])
            _merge_counts(aggregated["strategy_frequencies"], data["strategy_frequencies"])
            for key in ("payoff_sums", "payoff_sums_sq"):
                if data[key] is None:
                    continue
                if aggregated[key] is None:
                    aggregated[key] = [0.0] * len(data[key])
                aggregated[key] = [a + b for a, b in zip(aggregated[key], data[key])]
        return aggregated
