import time
import numpy as np
import concurrent.futures
from datetime import datetime, timezone
from riskgate.data.schemas.principal import KnownDevice, LocationFix, Principal
from riskgate.data.schemas.signals import InboundRequest
from riskgate.governance.audit import AuditRecorder, InMemoryAuditStore
from riskgate.governance.lockout import InMemoryFailureStore, LockoutStateMachine
from riskgate.governance.policies import LocalPolicyBackend, PolicyDecisionClient, PolicyEngine
from riskgate.identity import InMemoryIdentityStore
from riskgate.orchestration import AccessDecisionFlow
from riskgate.signals import SignalCollector

FINGERPRINT = "3f2a9c0d5e6b7a8190f1e2d3c4b5a697"


def create_flow():
    now = datetime.now(timezone.utc)
    identity_store = InMemoryIdentityStore([
        Principal(
            principal_id="usr_bench_001",
            contact="bench@example.com",
            is_verified=True,
            registered_fingerprint=FINGERPRINT,
            registered_location="Kolkata, West Bengal, India",
            location_history=[LocationFix(lat=22.5726, lon=88.3639, timestamp=now)],
            known_devices=[KnownDevice(fingerprint=FINGERPRINT, first_seen=now, last_seen=now)],
        )
    ])
    recorder = AuditRecorder(InMemoryAuditStore())
    return AccessDecisionFlow(
        collector=SignalCollector(),
        identity_store=identity_store,
        lockout=LockoutStateMachine(
            identity_store=identity_store,
            failure_store=InMemoryFailureStore(),
            recorder=recorder,
        ),
        policy_client=PolicyDecisionClient(LocalPolicyBackend(PolicyEngine())),
        recorder=recorder,
    )


def create_mock_request():
    return InboundRequest(
        headers={
            "user-agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
            "accept-language": "en-IN",
        },
        remote_addr="49.36.10.20",
        principal_id="usr_bench_001",
        device_fingerprint=FINGERPRINT,
        location="Kolkata, West Bengal, India",
        gps={"lat": 22.5726, "lon": 88.3639},
        keystroke_intervals=[112.0, 98.5, 131.0, 120.2],
    )

def run_latency_benchmark(iterations=100):
    flow = create_flow()
    request = create_mock_request()

    print(f"--- Latency Benchmark ({iterations} iterations) ---")

    latencies = []

    # Warmup
    flow.evaluate(request)

    for i in range(iterations):
        start_time = time.perf_counter()
        flow.evaluate(request)
        end_time = time.perf_counter()

        latency_ms = (end_time - start_time) * 1000
        latencies.append(latency_ms)

        if (i + 1) % 20 == 0:
            print(f"  Completed {i + 1}/{iterations} iterations")

    flow.close()
    print("\nLatency Results:")
    print(f"  Mean:   {np.mean(latencies):.2f} ms")
    print(f"  Median: {np.median(latencies):.2f} ms")
    print(f"  P95:    {np.percentile(latencies, 95):.2f} ms")
    print(f"  P99:    {np.percentile(latencies, 99):.2f} ms")
    print("-" * 40)
    return latencies

def run_throughput_benchmark(total_requests=500, concurrent_users=10):
    flow = create_flow()
    request = create_mock_request()

    print(f"\n--- Throughput Benchmark ({total_requests} requests, {concurrent_users} concurrent) ---")

    start_time = time.perf_counter()

    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrent_users) as executor:
        futures = [executor.submit(flow.evaluate, request) for _ in range(total_requests)]
        concurrent.futures.wait(futures)

    end_time = time.perf_counter()
    total_time = end_time - start_time
    flow.close()

    throughput = total_requests / total_time

    print(f"\nThroughput Results:")
    print(f"  Total Time: {total_time:.2f} s")
    print(f"  Throughput: {throughput:.2f} requests/sec")
    print("-" * 40)
    return throughput

if __name__ == "__main__":
    run_latency_benchmark()
    run_throughput_benchmark()
