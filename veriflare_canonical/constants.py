"""
Veriflare Canonical Constants

Single source of truth for the protocol constants of the Flare Data Connector
(FDC) Web2Json attestation flow.

Security Note: the attestation type, source id and response ABI are checked
byte-for-byte by the on-chain verifier. Changing them breaks every proof the
gateway produces.
"""


def _ascii_tag(tag: str) -> str:
    # ASCII bytes first, zero padded to 32 bytes
    raw = tag.encode("ascii")
    if len(raw) > 32:
        raise ValueError(f"Tag longer than 32 bytes: {tag}")
    return "0x" + raw.hex().ljust(64, "0")


# =============================================================================
# ATTESTATION IDENTIFIERS
# =============================================================================

ATTESTATION_TYPE_NAME = "Web2Json"
SOURCE_ID_NAME = "PublicWeb2"

# bytes32 identifiers sent to the verifier and echoed in every response
ATTESTATION_TYPE_WEB2JSON = _ascii_tag(ATTESTATION_TYPE_NAME)
SOURCE_ID_PUBLIC_WEB2 = _ascii_tag(SOURCE_ID_NAME)

# FDC protocol id on the Relay contract
FDC_PROTOCOL_ID = 200


# =============================================================================
# CONTRACTS
# =============================================================================

# Names resolved through the Flare contract registry (addresses can be redeployed)
FDC_HUB_CONTRACT_NAME = "FdcHub"
RELAY_CONTRACT_NAME = "Relay"

# Coston2 FlareContractRegistry
DEFAULT_CONTRACT_REGISTRY = "0xaD67FE66660Fb8dFE9d6b1b4240d8650e30F6019"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "string", "name": "_name", "type": "string"}],
        "name": "getContractAddressByName",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

FDC_HUB_ABI = [
    {
        "inputs": [{"internalType": "bytes", "name": "_data", "type": "bytes"}],
        "name": "requestAttestation",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]

RELAY_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "_timestamp", "type": "uint256"}],
        "name": "getVotingRoundId",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "_protocolId", "type": "uint256"},
            {"internalType": "uint256", "name": "_votingRoundId", "type": "uint256"},
        ],
        "name": "isFinalized",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "_protocolId", "type": "uint256"},
            {"internalType": "uint256", "name": "_votingRoundId", "type": "uint256"},
        ],
        "name": "merkleRoots",
        "outputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Fee attached to requestAttestation (1 C2FLR)
DEFAULT_REQUEST_FEE_WEI = 1_000_000_000_000_000_000


# =============================================================================
# WEB2JSON RESPONSE LAYOUT
# =============================================================================

# IWeb2Json.Response:
#   bytes32 attestationType, bytes32 sourceId, uint64 votingRound,
#   uint64 lowestUsedTimestamp,
#   RequestBody(url, httpMethod, headers, queryParams, body, postProcessJq, abiSignature),
#   ResponseBody(abiEncodedData)
WEB2JSON_REQUEST_BODY_ABI = "(string,string,string,string,string,string,string)"
WEB2JSON_RESPONSE_BODY_ABI = "(bytes)"
WEB2JSON_RESPONSE_ABI = (
    f"(bytes32,bytes32,uint64,uint64,{WEB2JSON_REQUEST_BODY_ABI},{WEB2JSON_RESPONSE_BODY_ABI})"
)


# =============================================================================
# SERVICE ENDPOINTS
# =============================================================================

VERIFIER_PREPARE_PATH = f"/{ATTESTATION_TYPE_NAME}/prepareRequest"
DA_PROOF_PATH = "/api/v1/fdc/proof-by-request-round-raw"
SOURCE_CACHE_ROUTE = "/api/source-cache"

DEFAULT_VERIFIER_URL = "https://fdc-verifiers-testnet.flare.network/verifier/web2"
DEFAULT_DA_LAYER_URL = "https://ctn2-data-availability.flare.network"
DEFAULT_RPC_URL = "https://coston2-api.flare.network/ext/C/rpc"

# Public testnet verifier key
DEFAULT_VERIFIER_API_KEY = "00000000-0000-0000-0000-000000000000"


# =============================================================================
# TIMING DEFAULTS
# =============================================================================

FINALIZATION_MAX_WAIT_SECONDS = 300
FINALIZATION_POLL_SECONDS = 10

# DA layer indexes a round some time after the Relay reports it finalized
DA_SETTLE_SECONDS = 30
DA_MAX_ATTEMPTS = 30
DA_RETRY_SECONDS = 10

SOURCE_CACHE_RETENTION_SECONDS = 3600
SOURCE_CACHE_SWEEP_SECONDS = 600

# Upstream error bodies are truncated to this many characters
MAX_ERROR_BODY_CHARS = 500


# =============================================================================
# STANDARD FILTERS / SCHEMAS
# =============================================================================

# jq filter and ABI tuple for GitHub commit attestations
COMMIT_POST_PROCESS_JQ = "{commitSha: .sha, treeHash: .commit.tree.sha, authorLogin: .author.login}"
COMMIT_ABI_SIGNATURE = {
    "components": [
        {"internalType": "string", "name": "commitSha", "type": "string"},
        {"internalType": "string", "name": "treeHash", "type": "string"},
        {"internalType": "string", "name": "authorLogin", "type": "string"},
    ],
    "name": "task",
    "type": "tuple",
}

# Whole document as a single JSON string field
DEFAULT_POST_PROCESS_JQ = "{value: (. | tojson)}"
VALUE_ABI_SIGNATURE = {
    "components": [
        {"internalType": "string", "name": "value", "type": "string"},
    ],
    "name": "task",
    "type": "tuple",
}
