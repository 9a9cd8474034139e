"""
Window Aggregation Tests
"""

import itertools
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fhe_core.ciphertext import CiphertextWidth
from coordinator.window_aggregator import WindowAggregator, region_key_for, window_key_for


CONTRIBUTIONS = [(1, 10), (1, 15), (2, 7), (1, 40)]


class TestWindowKeys:

    def test_deterministic(self):
        assert window_key_for(3600) == window_key_for(3600)
        assert window_key_for(3600).startswith("0x")
        assert len(window_key_for(3600)) == 66

    def test_distinct(self):
        assert window_key_for(0) != window_key_for(3600)
        assert region_key_for("north") != region_key_for("south")


class TestWindowAggregator:

    @pytest.fixture
    def aggregator(self, plain_algebra, security_logger):
        return WindowAggregator(plain_algebra, security_logger)

    def _accumulate(self, aggregator, algebra, key, count, energy):
        aggregator.accumulate(
            key,
            algebra.encrypt(count, CiphertextWidth.NARROW),
            algebra.encrypt(energy, CiphertextWidth.WIDE)
        )

    def test_unknown_window_is_uninitialized(self, aggregator):
        metrics = aggregator.get_metrics(window_key_for(0))

        assert not metrics.initialized
        assert metrics.encrypted_total_energy is None
        assert metrics.contributions == 0

    def test_first_contribution_sets_baseline(self, aggregator, plain_algebra):
        key = window_key_for(0)
        self._accumulate(aggregator, plain_algebra, key, 1, 10)

        metrics = aggregator.get_metrics(key)
        assert metrics.initialized
        assert plain_algebra.decrypt(metrics.encrypted_session_count) == 1
        assert plain_algebra.decrypt(metrics.encrypted_total_energy) == 10

    def test_sums(self, aggregator, plain_algebra):
        key = window_key_for(0)
        for count, energy in CONTRIBUTIONS:
            self._accumulate(aggregator, plain_algebra, key, count, energy)

        metrics = aggregator.get_metrics(key)
        assert plain_algebra.decrypt(metrics.encrypted_session_count) == 5
        assert plain_algebra.decrypt(metrics.encrypted_total_energy) == 72
        assert metrics.contributions == 4

    def test_order_independence(self, plain_algebra):
        """Every arrival order yields the same aggregate"""
        results = set()
        for order in itertools.permutations(CONTRIBUTIONS):
            aggregator = WindowAggregator(plain_algebra)
            for count, energy in order:
                self._accumulate(aggregator, plain_algebra, "w", count, energy)
            metrics = aggregator.get_metrics("w")
            results.add((
                plain_algebra.decrypt(metrics.encrypted_session_count),
                plain_algebra.decrypt(metrics.encrypted_total_energy)
            ))

        assert results == {(5, 72)}

    def test_windows_are_independent(self, aggregator, plain_algebra):
        self._accumulate(aggregator, plain_algebra, window_key_for(0), 1, 10)
        self._accumulate(aggregator, plain_algebra, window_key_for(3600), 1, 99)

        first = aggregator.get_metrics(window_key_for(0))
        assert plain_algebra.decrypt(first.encrypted_total_energy) == 10
        assert sorted(aggregator.window_keys()) == sorted([window_key_for(0), window_key_for(3600)])

    def test_wrong_width_leaves_window_untouched(self, aggregator, plain_algebra):
        key = window_key_for(0)
        self._accumulate(aggregator, plain_algebra, key, 1, 10)

        with pytest.raises(ValueError, match="NARROW"):
            aggregator.accumulate(
                key,
                plain_algebra.encrypt(1, CiphertextWidth.WIDE),
                plain_algebra.encrypt(5, CiphertextWidth.WIDE)
            )
        with pytest.raises(ValueError, match="WIDE"):
            aggregator.accumulate(
                key,
                plain_algebra.encrypt(1, CiphertextWidth.NARROW),
                plain_algebra.encrypt(5, CiphertextWidth.NARROW)
            )

        metrics = aggregator.get_metrics(key)
        assert metrics.contributions == 1
        assert plain_algebra.decrypt(metrics.encrypted_total_energy) == 10

    def test_accumulations_are_logged(self, aggregator, plain_algebra, security_logger):
        key = window_key_for(0)
        self._accumulate(aggregator, plain_algebra, key, 1, 10)
        self._accumulate(aggregator, plain_algebra, key, 1, 15)

        ops = [e.details['operation'] for e in security_logger.get_all_entries()]
        assert ops == ['initialize', 'homomorphic_sum']
        assert security_logger.verify_no_violations()


class TestEncryptedAggregation:
    """Same properties on real BFV ciphertexts"""

    def test_order_independence_bfv(self, oracle_fhe, ledger_fhe):
        contributions = [(1, 10), (1, 15), (1, 30)]
        totals = []
        for order in (contributions, list(reversed(contributions))):
            aggregator = WindowAggregator(ledger_fhe)
            for count, energy in order:
                aggregator.accumulate(
                    "w",
                    ledger_fhe.encrypt(count, CiphertextWidth.NARROW),
                    ledger_fhe.encrypt(energy, CiphertextWidth.WIDE)
                )
            metrics = aggregator.get_metrics("w")
            totals.append((
                oracle_fhe.decrypt(metrics.encrypted_session_count),
                oracle_fhe.decrypt(metrics.encrypted_total_energy)
            ))

        assert totals == [(3, 55), (3, 55)]

    def test_aggregator_cannot_decrypt(self, ledger_fhe):
        aggregator = WindowAggregator(ledger_fhe)
        assert aggregator.get_stats()['can_decrypt'] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
