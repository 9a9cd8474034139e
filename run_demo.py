"""
Private Charging Ledger - Main Demo Runner
==========================================
Single entry point to run the complete system.

Usage:
    python run_demo.py              # Run the ledger server
    python run_demo.py --cli        # Run CLI demo
    python run_demo.py --benchmark  # Compare plaintext and BFV aggregation
"""

import sys
import os
import argparse
import time

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def run_cli_demo(num_sessions: int = 12, seed: int = 7):
    """Run command-line demonstration"""
    from fhe_core.bfv_engine import ChargingFHE, load_public_engine
    from fhe_core.ciphertext import CiphertextWidth
    from fhe_core.security_logger import SecurityLogger
    from coordinator.charging_ledger import ChargingLedger
    from coordinator.config import LedgerConfig
    from coordinator.errors import LedgerError
    from coordinator.window_aggregator import region_key_for, window_key_for
    from oracle.local_oracle import LocalDecryptionOracle

    rng = np.random.default_rng(seed)

    print("=" * 70)
    print("Private Charging Ledger")
    print("Encrypted aggregation with oracle-verified reveals (BFV/TenSEAL)")
    print("=" * 70)

    # Step 1: Initialize
    print("\n[1] INITIALIZATION")
    print("-" * 40)

    print("Generating FHE keys (Decryption Oracle)...")
    oracle_fhe = ChargingFHE()
    print(f"  ✓ Context hash: {oracle_fhe.get_context_hash()}")
    print(f"  ✓ Plain modulus: {oracle_fhe.plain_modulus}")

    logger = SecurityLogger()
    oracle = LocalDecryptionOracle(oracle_fhe, security_logger=logger)
    print(f"  ✓ Oracle has secret key: {oracle_fhe.is_private()}")
    print(f"  ✓ Proof key id: {oracle.signer.key_id}")

    ledger_fhe = load_public_engine(oracle_fhe)
    ledger = ChargingLedger(
        ledger_fhe,
        oracle,
        config=LedgerConfig(operator_allow_list=["operator-1"]),
        security_logger=logger
    )
    print(f"  ✓ Ledger has secret key: {ledger_fhe.is_private()}")

    # Step 2: Sessions
    print("\n[2] ENCRYPTED SESSIONS")
    print("-" * 40)

    buckets = [0, 3600]
    expected = {b: [0, 0] for b in buckets}

    for _ in range(num_sessions):
        bucket = int(rng.choice(buckets))
        energy = int(rng.integers(5, 60))
        station = int(rng.integers(1, 20))
        duration = int(rng.integers(1, 8))

        ledger.submit_session(
            ledger_fhe.encrypt(station, CiphertextWidth.NARROW),
            ledger_fhe.encrypt(bucket, CiphertextWidth.NARROW),
            ledger_fhe.encrypt(duration, CiphertextWidth.NARROW),
            ledger_fhe.encrypt(energy, CiphertextWidth.WIDE)
        )
        ledger.accumulate(
            window_key_for(bucket),
            ledger_fhe.encrypt(1, CiphertextWidth.NARROW),
            ledger_fhe.encrypt(energy, CiphertextWidth.WIDE)
        )
        expected[bucket][0] += 1
        expected[bucket][1] += energy

    print(f"  Submitted {ledger.session_count()} encrypted sessions")
    for bucket in buckets:
        metrics = ledger.get_window(window_key_for(bucket))
        print(f"  Window {bucket}: {metrics.contributions} contributions, "
              f"total={metrics.encrypted_total_energy.get_display_ciphertext(32)}")

    # Step 3: Reveals
    print("\n[3] ORACLE REVEALS")
    print("-" * 40)

    forecast_ids = {b: ledger.request_forecast(window_key_for(b)) for b in buckets}
    balance_id = ledger.request_load_balance(
        window_key_for(buckets[0]),
        ledger_fhe.encrypt(2, CiphertextWidth.NARROW)
    )
    site_id = ledger.request_site_suggestion(
        "operator-1",
        region_key_for("north"),
        ledger_fhe.encrypt(expected[buckets[0]][1], CiphertextWidth.WIDE),
        ledger_fhe.encrypt(4, CiphertextWidth.NARROW)
    )
    try:
        ledger.request_site_suggestion(
            "intruder",
            region_key_for("north"),
            ledger_fhe.encrypt(1, CiphertextWidth.WIDE),
            ledger_fhe.encrypt(1, CiphertextWidth.NARROW)
        )
    except LedgerError as e:
        print(f"  ✗ Rejected: {e.error_code} ({e})")

    print(f"  Pending before oracle: {[p['request_id'] for p in ledger.pending_requests()]}")
    oracle.fulfill_all()
    print(f"  Pending after oracle: {[p['request_id'] for p in ledger.pending_requests()]}")

    for bucket, request_id in forecast_ids.items():
        label, payload, revealed = ledger.get_result(request_id)
        count, energy = expected[bucket]
        print(f"  Window {bucket}: {label} -> {payload} "
              f"(expected demand={energy}kWh/{count}sessions, revealed={revealed})")

    for request_id in (balance_id, site_id):
        label, payload, revealed = ledger.get_result(request_id)
        print(f"  Request {request_id}: {label} -> {payload}")

    # Step 4: Security audit
    print("\n[4] SECURITY AUDIT")
    print("-" * 40)

    audit = logger.generate_audit_report()
    print(f"  Total operations logged: {audit['total_log_entries']}")
    print(f"  Entities: {audit['entities']}")
    print(f"  Ledger plaintext access: {audit['ledger_privacy_audit']['plaintext_access']}")
    print(f"  Violations: {len(audit['security_violations'])}")
    print(f"\n  CONCLUSION: {audit['conclusion']}")

    print("\n" + "=" * 70)
    print("Demo Complete!")
    print("=" * 70)


def run_benchmark(num_sessions: int = 50, seed: int = 7):
    """Compare aggregation cost of the plaintext baseline and BFV"""
    from fhe_core.bfv_engine import ChargingFHE
    from fhe_core.ciphertext import CiphertextWidth, PlaintextAlgebra

    rng = np.random.default_rng(seed)
    energies = [int(e) for e in rng.integers(5, 60, size=num_sessions)]

    print("=" * 70)
    print(f"Aggregation Benchmark ({num_sessions} sessions)")
    print("=" * 70)

    for name, algebra in (("Plaintext (no privacy)", PlaintextAlgebra()), ("BFV (TenSEAL)", ChargingFHE())):
        enc_times = []
        encrypted = []
        for energy in energies:
            start = time.perf_counter()
            encrypted.append(algebra.encrypt(energy, CiphertextWidth.WIDE))
            enc_times.append((time.perf_counter() - start) * 1000)

        start = time.perf_counter()
        total = encrypted[0]
        for value in encrypted[1:]:
            total = algebra.add(total, value)
        agg_ms = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        decrypted = algebra.decrypt(total)
        dec_ms = (time.perf_counter() - start) * 1000

        print(f"\n{name}")
        print(f"  Encrypt (mean): {np.mean(enc_times):.3f} ms")
        print(f"  Aggregate:      {agg_ms:.3f} ms")
        print(f"  Decrypt:        {dec_ms:.3f} ms")
        print(f"  Ciphertext:     {total.get_size_kb():.2f} KB")
        print(f"  Exact:          {decrypted == sum(energies)}")


def run_server(port: int = 8000, key_dir: str = None, audit_log: str = None):
    """Run the ledger server"""
    from coordinator.config import LedgerConfig, ServerConfig
    from server import server as server_module

    print("=" * 70)
    print("Private Charging Ledger - Server")
    print("=" * 70)
    print(f"\nStarting server on http://localhost:{port}")

    server_module.server.config = ServerConfig(
        port=port,
        ledger=LedgerConfig(key_dir=key_dir, audit_log_file=audit_log)
    )
    server_module.run_server(port=port)


def main():
    parser = argparse.ArgumentParser(
        description="Private Charging Ledger Demo"
    )
    parser.add_argument('--cli', action='store_true',
                       help='Run command-line demo (no web server)')
    parser.add_argument('--benchmark', action='store_true',
                       help='Compare plaintext and BFV aggregation')
    parser.add_argument('--sessions', type=int, default=12,
                       help='Number of simulated sessions (default: 12)')
    parser.add_argument('--port', type=int, default=8000,
                       help='Web server port (default: 8000)')
    parser.add_argument('--key-dir', default=None,
                       help='Persist oracle keys in this directory')
    parser.add_argument('--audit-log', default=None,
                       help='Append security audit entries to this file')

    args = parser.parse_args()

    if args.cli:
        run_cli_demo(args.sessions)
    elif args.benchmark:
        run_benchmark(args.sessions)
    else:
        run_server(args.port, args.key_dir, args.audit_log)


if __name__ == "__main__":
    main()
