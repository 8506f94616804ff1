from dataclasses import dataclass


@dataclass(frozen=True)
class MultiplierProgress:
    existing_count: int
    after_count: int
    multiplier: int
    stars_earned: int

    @property
    def is_multiplier(self) -> bool:
        return self.multiplier > 1

    @property
    def completes_group(self) -> bool:
        return self.after_count // self.multiplier > self.existing_count // self.multiplier

    def to_dict(self) -> dict:
        return {
            "existing_count": self.existing_count,
            "after_count": self.after_count,
            "multiplier": self.multiplier,
            "stars_earned": self.stars_earned,
            "is_multiplier": self.is_multiplier,
        }


def progress(existing_count: int, multiplier: int, base_stars: int) -> MultiplierProgress:
    """Stars earned by the next event given how many same-rule events came before it.

    ``existing_count`` must come from one consistent snapshot; the calculation
    knows nothing about ordering beyond that number.
    """
    if existing_count < 0:
        raise ValueError("existing_count must be >= 0")
    if multiplier < 1:
        raise ValueError("multiplier must be >= 1")

    after_count = existing_count + 1
    if multiplier == 1:
        stars = base_stars
    else:
        stars = base_stars * (after_count // multiplier - existing_count // multiplier)
    return MultiplierProgress(
        existing_count=existing_count,
        after_count=after_count,
        multiplier=multiplier,
        stars_earned=stars,
    )
