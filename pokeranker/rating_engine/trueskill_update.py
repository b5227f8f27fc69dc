"""Pure TrueSkill rating calculations."""

import trueskill

from pokeranker.config import EngineConfig
from pokeranker.rating_engine.models import Rating


def conservative_score(rating: Rating) -> float:
    """Pessimistic point estimate used for sorting: mu - 3 * sigma."""
    return rating.mu - 3.0 * rating.sigma


def confidence_percent(rating: Rating, full_sigma: float = 8.33) -> float:
    """Map sigma onto a 0-100 confidence value.

    A fresh prior (sigma ~= 8.33) reads 0%, and confidence grows linearly as
    sigma shrinks toward zero.

    Args:
        rating: Rating to evaluate
        full_sigma: Sigma at which confidence is 0%

    Returns:
        Confidence clamped to [0, 100]
    """
    value = 100.0 * (1.0 - rating.sigma / full_sigma)
    return max(0.0, min(100.0, value))


class PairwiseUpdateEngine:
    """Applies one win/loss outcome to two ratings (TrueSkill 1v1).

    Each result moves both means toward the observed outcome by an amount
    that scales with the current sigma. ``beta`` is the performance variance
    and ``tau`` the dynamics term added before every update, which keeps
    sigma from collapsing to zero.
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self._env = trueskill.TrueSkill(
            mu=self.config.mu,
            sigma=self.config.sigma,
            beta=self.config.beta,
            tau=self.config.tau,
            draw_probability=self.config.draw_probability,
        )

    def default_rating(self) -> Rating:
        """Prior used for candidates without a rating."""
        return Rating(mu=self.config.mu, sigma=self.config.sigma)

    def update(self, winner: Rating, loser: Rating) -> tuple[Rating, Rating]:
        """Return the (winner, loser) ratings after the winner beat the loser.

        Pure: inputs are not modified and no state is kept between calls.
        """
        (new_winner,), (new_loser,) = self._env.rate(
            [
                (self._env.create_rating(mu=winner.mu, sigma=winner.sigma),),
                (self._env.create_rating(mu=loser.mu, sigma=loser.sigma),),
            ],
            ranks=[0, 1],
        )
        return (
            Rating(mu=new_winner.mu, sigma=new_winner.sigma),
            Rating(mu=new_loser.mu, sigma=new_loser.sigma),
        )
