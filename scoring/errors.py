class IncentiveError(Exception):
    pass


class InvalidAmountError(IncentiveError):
    pass


class UnknownRuleError(IncentiveError):
    def __init__(self, category: str, service_key: str | None):
        self.category = category
        self.service_key = service_key
        super().__init__(f"No rule for {category!r} / {service_key!r}")


class InvalidSelectionError(IncentiveError):
    pass


class AlreadyAwardedError(IncentiveError):
    def __init__(self, period_key: str, kind: str):
        self.period_key = period_key
        self.kind = kind
        super().__init__(f"Stars already awarded for {kind} period {period_key}")


class PartialBatchFailureError(IncentiveError):
    """A chunk failed after earlier chunks committed.

    Every committed chunk is complete (events rewritten and ledger deltas
    applied together), so re-running the whole job only touches what is left.
    """

    def __init__(self, completed_staff_ids: list[str], completed_event_ids: list[str],
                 failed_chunk: int, total_chunks: int):
        self.completed_staff_ids = completed_staff_ids
        self.completed_event_ids = completed_event_ids
        self.failed_chunk = failed_chunk
        self.total_chunks = total_chunks
        super().__init__(
            f"Chunk {failed_chunk + 1}/{total_chunks} failed after "
            f"{len(completed_event_ids)} events were committed"
        )

    def to_dict(self) -> dict:
        return {
            "failed_chunk": self.failed_chunk,
            "total_chunks": self.total_chunks,
            "completed_staff_ids": self.completed_staff_ids,
            "completed_event_ids": self.completed_event_ids,
        }
