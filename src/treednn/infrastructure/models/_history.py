"""
Training history.

`History` is the per-epoch metric record returned by `Model.fit`. It holds
aggregated values only; averaging over batches is the training loop's job.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Union


Number = Union[int, float]


@dataclass
class History:
    """
    Container for per-epoch training metrics.

    Attributes
    ----------
    history : Dict[str, List[float]]
        Mapping from metric name to its per-epoch values, in epoch order.
    epoch : List[int]
        Zero-based epoch indices matching the entries of `history`.
    """

    history: Dict[str, List[float]] = field(default_factory=dict)
    epoch: List[int] = field(default_factory=list)

    def append_epoch(self, epoch_idx: int, logs: Mapping[str, Number]) -> None:
        """
        Append the aggregated metrics of a completed epoch.

        Parameters
        ----------
        epoch_idx : int
            Zero-based index of the completed epoch.
        logs : Mapping[str, Number]
            Metric name to epoch value (e.g. mean loss, accuracy).
        """
        self.epoch.append(int(epoch_idx))
        for k, v in logs.items():
            self.history.setdefault(k, []).append(float(v))

    def last(self) -> Dict[str, float]:
        """Return the metrics of the most recent epoch."""
        return {k: float(vs[-1]) for k, vs in self.history.items() if vs}

    def __getitem__(self, key: str) -> List[float]:
        return self.history[key]
