"""
FDC Attestation Pipeline

The four stages of a Web2Json attestation and the engine that chains them:
- preparer.py: Build the request envelope, ask the verifier for encoded bytes
- submitter.py: Pay the fee and submit to FdcHub, derive the voting round
- waiter.py: Poll the Relay until the round is finalized
- fetcher.py: Pull and decode the Merkle proof from the DA layer
- orchestrator.py: AttestationEngine (full chain, background mode, status)
- factory.py: Build an engine from gateway configuration
- errors.py: Error taxonomy
"""
