"""
End-to-End Ledger Tests
=======================
Full flow on real BFV ciphertexts: submit, aggregate, request, oracle
decrypts and signs, ledger verifies and reveals.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from conftest import contribute, forge_wide
from fhe_core.ciphertext import CiphertextWidth, EncryptedValue, PlaintextAlgebra, compute_checksum
from coordinator.charging_ledger import ChargingLedger
from coordinator.cleartext_codec import encode_cleartexts
from coordinator.window_aggregator import region_key_for, window_key_for
from oracle.local_oracle import LocalDecryptionOracle


W = window_key_for(0)
W2 = window_key_for(3600)


class SignedPlaintextAlgebra(PlaintextAlgebra):
    """Baseline whose payloads decode as signed integers"""

    def decrypt(self, encrypted):
        return int.from_bytes(encrypted.ciphertext, 'big', signed=True)


class TestForecastFlow:

    def test_forecast_through_oracle(self, ledger, ledger_fhe, oracle):
        contribute(ledger, ledger_fhe, W, 1, 10)
        contribute(ledger, ledger_fhe, W, 1, 15)

        request_id = ledger.request_forecast(W)
        assert ledger.get_result(request_id) == ("", "", False)

        oracle.fulfill(request_id)

        assert ledger.get_result(request_id) == ("forecast", "demand=25kWh/2sessions", True)
        assert oracle.pending_ids() == []

    def test_manual_delivery(self, ledger, ledger_fhe, oracle):
        """Oracle output delivered by hand through the forecast entry point"""
        contribute(ledger, ledger_fhe, W, 1, 10)
        contribute(ledger, ledger_fhe, W, 1, 15)
        request_id = ledger.request_forecast(W)

        cleartexts, proof = oracle.decrypt_request(request_id)
        assert cleartexts == encode_cleartexts("forecast", "demand=25kWh/2sessions")

        ledger.deliver_forecast(request_id, cleartexts, proof)
        assert ledger.get_result(request_id) == ("forecast", "demand=25kWh/2sessions", True)

    def test_request_snapshots_window(self, ledger, ledger_fhe, oracle):
        """Contributions after the request do not change its result"""
        contribute(ledger, ledger_fhe, W, 1, 10)
        request_id = ledger.request_forecast(W)
        contribute(ledger, ledger_fhe, W, 1, 15)

        oracle.fulfill(request_id)
        assert ledger.get_result(request_id)[1] == "demand=10kWh/1sessions"

        later_id = ledger.request_forecast(W)
        oracle.fulfill(later_id)
        assert ledger.get_result(later_id)[1] == "demand=25kWh/2sessions"

    def test_large_energy_total(self, ledger, ledger_fhe, oracle):
        """Totals far above the BFV plain modulus reveal exactly"""
        for _ in range(11):
            contribute(ledger, ledger_fhe, W, 1, 50000)

        request_id = ledger.request_forecast(W)
        oracle.fulfill(request_id)

        assert ledger.get_result(request_id) == ("forecast", "demand=550000kWh/11sessions", True)

    def test_unknown_result(self, ledger):
        assert ledger.get_result(12345) == ("", "", False)


class TestOtherRoutes:

    def test_load_balance(self, ledger, ledger_fhe, oracle):
        contribute(ledger, ledger_fhe, W, 1, 10)
        contribute(ledger, ledger_fhe, W, 1, 15)

        request_id = ledger.request_load_balance(W, ledger_fhe.encrypt(3, CiphertextWidth.NARROW))
        oracle.fulfill_all()

        assert ledger.get_result(request_id) == (
            "load_balance", "load=25kWh/2sessions/priority=3", True
        )

    def test_site_suggestion(self, ledger, ledger_fhe, oracle):
        request_id = ledger.request_site_suggestion(
            "operator-1",
            region_key_for("north"),
            ledger_fhe.encrypt(40, CiphertextWidth.WIDE),
            ledger_fhe.encrypt(3, CiphertextWidth.NARROW)
        )
        oracle.fulfill_all()

        assert ledger.get_result(request_id) == ("site_suggestion", "demand=40/stations=3", True)


class TestLedgerFacade:

    def test_ledger_rejects_secret_key(self, oracle_fhe, oracle):
        with pytest.raises(ValueError, match="security violation"):
            ChargingLedger(oracle_fhe, oracle)

    def test_oracle_requires_secret_key(self, ledger_fhe):
        with pytest.raises(ValueError, match="secret key"):
            LocalDecryptionOracle(ledger_fhe)

    def test_sessions(self, ledger, ledger_fhe):
        ids = [
            ledger.submit_session(
                ledger_fhe.encrypt(station, CiphertextWidth.NARROW),
                ledger_fhe.encrypt(0, CiphertextWidth.NARROW),
                ledger_fhe.encrypt(2, CiphertextWidth.NARROW),
                ledger_fhe.encrypt(energy, CiphertextWidth.WIDE)
            )
            for station, energy in ((1, 10), (2, 15))
        ]

        assert ids == [1, 2]
        assert ledger.session_count() == 2
        assert ledger.get_session(2).encrypted_energy.width == CiphertextWidth.WIDE
        assert [s.id for s in ledger.list_sessions(offset=1)] == [2]
        assert ledger.get_session(3) is None

    def test_pending_requests(self, ledger, ledger_fhe, oracle):
        contribute(ledger, ledger_fhe, W, 1, 10)
        first = ledger.request_forecast(W)
        second = ledger.request_forecast(W)

        assert [p['request_id'] for p in ledger.pending_requests()] == [first, second]

        oracle.fulfill(first)
        pending = ledger.pending_requests()
        assert [p['request_id'] for p in pending] == [second]
        assert pending[0]['route'] == "forecast"
        assert pending[0]['context_key'] == W

    def test_dropped_request_stays_pending(self, ledger, ledger_fhe, oracle):
        """An oracle that never answers leaves the request pending forever"""
        contribute(ledger, ledger_fhe, W, 1, 10)
        request_id = ledger.request_forecast(W)

        assert oracle.drop(request_id)
        assert oracle.pending_ids() == []
        assert ledger.get_result(request_id) == ("", "", False)
        assert [p['request_id'] for p in ledger.pending_requests()] == [request_id]

    def test_audit_shows_no_plaintext_at_ledger(self, ledger, ledger_fhe, oracle, security_logger):
        contribute(ledger, ledger_fhe, W, 1, 10)
        contribute(ledger, ledger_fhe, W, 1, 15)
        oracle.fulfill(ledger.request_forecast(W))

        audit = security_logger.generate_audit_report()
        assert audit['ledger_privacy_audit']['plaintext_access'] is False
        assert audit['security_violations'] == []
        assert audit['entities'] == ['ledger', 'oracle']
        assert "PRIVACY PRESERVED" in audit['conclusion']

    def test_stats(self, ledger, ledger_fhe, oracle):
        contribute(ledger, ledger_fhe, W, 1, 10)
        oracle.fulfill(ledger.request_forecast(W))

        stats = ledger.get_stats()
        assert stats['requests_issued'] == 1
        assert stats['results_revealed'] == 1
        assert stats['can_decrypt'] is False
        assert stats['delivery_policy'] == "last_write_wins"



class TestOracleFailures:
    """Ciphertexts the oracle cannot decrypt never produce a signed result"""

    def test_unparseable_contribution_rejected(self, ledger, ledger_fhe):
        garbage = b"not a bfv stream"
        forged = EncryptedValue(ciphertext=garbage, width=CiphertextWidth.NARROW,
                                checksum=compute_checksum(garbage))

        with pytest.raises(ValueError, match="Malformed"):
            ledger.accumulate(W, forged, ledger_fhe.encrypt(10, CiphertextWidth.WIDE))
        assert not ledger.get_window(W).initialized

    def test_undecryptable_request_dropped(self, ledger, ledger_fhe, oracle, security_logger):
        ledger.accumulate(W, ledger_fhe.encrypt(1, CiphertextWidth.NARROW),
                          forge_wide(ledger_fhe, [-5, 0, 0, 0, 0, 0, 0, 0]))
        contribute(ledger, ledger_fhe, W2, 1, 20)
        bad_id = ledger.request_forecast(W)
        good_id = ledger.request_forecast(W2)

        with pytest.raises(ValueError, match="overflowed"):
            oracle.fulfill(bad_id)

        assert oracle.pending_ids() == [good_id]
        assert oracle.get_stats()['failed'] == 1
        assert ledger.get_result(bad_id) == ("", "", False)

        rejections = [e for e in security_logger.get_entries_for_entity('oracle')
                      if e.operation == 'reject']
        assert rejections[0].details['request_id'] == bad_id

        oracle.fulfill(good_id)
        assert ledger.get_result(good_id) == ("forecast", "demand=20kWh/1sessions", True)

    def test_negative_value_never_signed(self):
        algebra = SignedPlaintextAlgebra()
        oracle = LocalDecryptionOracle(algebra)
        ledger = ChargingLedger(algebra, oracle, allow_private_algebra=True)
        negative = (-482193).to_bytes(16, 'big', signed=True)
        ledger.accumulate(
            W,
            algebra.encrypt(11, CiphertextWidth.NARROW),
            EncryptedValue(ciphertext=negative, width=CiphertextWidth.WIDE,
                           checksum=compute_checksum(negative))
        )
        request_id = ledger.request_forecast(W)

        with pytest.raises(ValueError, match="out of range"):
            oracle.decrypt_request(request_id)
        with pytest.raises(ValueError, match="out of range"):
            oracle.fulfill(request_id)
        assert ledger.get_result(request_id) == ("", "", False)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
