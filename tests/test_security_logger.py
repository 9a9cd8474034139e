"""
Security Audit Log Tests
"""

import json
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fhe_core.security_logger import DataType, OperationType, SecurityLogger


class TestSecurityLogger:

    def test_ledger_ciphertext_is_safe(self, security_logger):
        entry = security_logger.log_window_accumulate("0xabc", initialized=False)

        assert entry.is_safe
        assert entry.entity == 'ledger'
        assert security_logger.verify_no_violations()

    def test_oracle_plaintext_is_authorized(self, security_logger):
        entry = security_logger.log_oracle_decrypt(1, 2)

        assert entry.is_safe
        assert DataType.PLAINTEXT.value in entry.data_types

    def test_revealed_result_is_not_a_violation(self, security_logger):
        security_logger.log_result_delivered(1, "forecast", "0xabc")

        assert security_logger.get_ledger_summary()['privacy_preserved']

    def test_ledger_plaintext_is_violation(self, security_logger):
        security_logger.log('ledger', OperationType.DECRYPT, [DataType.PLAINTEXT])

        assert not security_logger.verify_no_violations()
        report = security_logger.generate_audit_report()
        assert len(report['security_violations']) == 1
        assert "PRIVACY VIOLATION" in report['conclusion']

    def test_sequence_ids(self, security_logger):
        security_logger.log_session_submitted(1, 12.5)
        security_logger.log_session_submitted(2, 12.5)

        assert [e.sequence_id for e in security_logger.get_all_entries()] == [1, 2]

    def test_file_persistence(self, tmp_path):
        log_file = tmp_path / "audit.jsonl"
        logger = SecurityLogger(str(log_file))
        logger.log_decryption_requested(1, "forecast", "0xabc", 2)
        logger.log_proof_verified(1, True)

        lines = log_file.read_text().splitlines()
        assert [json.loads(line)['operation'] for line in lines] == ['request_decryption', 'verify_proof']

        reloaded = SecurityLogger(str(log_file))
        assert len(reloaded.get_all_entries()) == 2
        assert reloaded.log_rejected('deliver_forecast', 'INVALID_PROOF').sequence_id == 3

    def test_display_format(self, security_logger):
        security_logger.log_window_accumulate("0xabc", initialized=True)
        security_logger.log_oracle_decrypt(1, 2)
        security_logger.log_rejected('request_reveal', 'NO_METRICS_FOR_WINDOW')

        colors = [d['color'] for d in security_logger.to_display_format()]
        assert colors == ['green', 'blue', 'yellow']

    def test_clear(self, tmp_path):
        log_file = tmp_path / "audit.jsonl"
        logger = SecurityLogger(str(log_file))
        logger.log_session_submitted(1, 1.0)

        logger.clear()

        assert logger.get_all_entries() == []
        assert not log_file.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
