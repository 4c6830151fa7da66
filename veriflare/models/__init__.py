"""
Gateway Models

- status.py: Attestation lifecycle record and decoded proof
- requests.py: API request bodies
- responses.py: API response bodies
"""
