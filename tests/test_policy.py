import pytest

from tezsigner.keys import KeyKind, PublicKeyHash
from tezsigner.policy import (
    DEFAULT_POLICY,
    PolicyError,
    PublicKeyPolicy,
    fixup_requests,
    jwt_verify_user,
    match_filter,
    prepare_policy,
)

SIGNER = PublicKeyHash(KeyKind.ED25519, bytes(20))
CLIENT = PublicKeyHash(KeyKind.ED25519, bytes([1]) + bytes(19))
OTHER = PublicKeyHash(KeyKind.SECP256K1, bytes([2]) + bytes(19))


def test_fixup_requests_renames_and_sorts():
    assert fixup_requests(["preendorsement", "block", "endorsement"]) == [
        "attestation",
        "block",
        "preattestation",
    ]


def test_fixup_requests_keeps_current_names():
    result = fixup_requests(["generic", "attestation"])
    assert result == sorted(result)
    assert set(result) == {"generic", "attestation"}


def test_default_policy_allows_consensus_requests_only():
    assert DEFAULT_POLICY.allowed_requests == ["block", "preattestation", "attestation"]
    for kind in ("block", "preattestation", "attestation"):
        assert match_filter(DEFAULT_POLICY, None, kind) is None
    with pytest.raises(PolicyError, match="request kind `generic' is not allowed"):
        match_filter(DEFAULT_POLICY, None, "generic")


def test_prepare_policy_none_entry_stays_none():
    out = prepare_policy({SIGNER: None})
    assert out == {SIGNER: None}


def test_prepare_policy_accepts_base58_keys():
    out = prepare_policy({SIGNER.to_b58(): None})
    assert list(out) == [SIGNER]


def test_prepare_policy_allow():
    out = prepare_policy(
        {
            SIGNER: {
                "allow": {
                    "block": None,
                    "endorsement": None,
                    "generic": ["transaction", "delegation", "endorsement"],
                },
                "log_payloads": True,
            }
        }
    )
    pol = out[SIGNER]
    assert pol.allowed_requests == ["attestation", "block", "generic"]
    assert pol.allowed_ops == ["attestation", "delegation", "transaction"]
    assert pol.log_payloads is True
    assert pol.authorized_key_hashes is None
    assert pol.authorized_jwt_users is None


def test_prepare_policy_allow_without_generic_has_no_ops():
    pol = prepare_policy({SIGNER: {"allow": {"block": []}}})[SIGNER]
    assert pol.allowed_requests == ["block"]
    assert pol.allowed_ops == []


def test_prepare_policy_deprecated_options():
    pol = prepare_policy(
        {
            SIGNER: {
                "allowed_operations": ["generic", "preendorsement"],
                "allowed_kinds": ["double_endorsement_evidence", "reveal"],
            }
        }
    )[SIGNER]
    assert pol.allowed_requests == ["generic", "preattestation"]
    assert pol.allowed_ops == ["double_attestation_evidence", "reveal"]


def test_prepare_policy_allow_takes_precedence_over_deprecated():
    pol = prepare_policy(
        {SIGNER: {"allow": {"block": None}, "allowed_operations": ["generic"]}}
    )[SIGNER]
    assert pol.allowed_requests == ["block"]


def test_prepare_policy_renames_all_legacy_operations():
    pol = prepare_policy(
        {
            SIGNER: {
                "allow": {
                    "generic": [
                        "preendorsement",
                        "double_preendorsement_evidence",
                        "endorsement",
                    ]
                }
            }
        }
    )[SIGNER]
    assert pol.allowed_ops == [
        "attestation",
        "double_preattestation_evidence",
        "preattestation",
    ]


def test_prepare_policy_authorized_keys_and_users():
    pol = prepare_policy(
        {
            SIGNER: {
                "allow": {"block": None},
                "authorized_keys": [CLIENT.to_b58(), OTHER],
                "jwt_users": ["alice"],
            }
        }
    )[SIGNER]
    assert pol.authorized_key_hashes == [CLIENT, OTHER]
    assert pol.authorized_jwt_users == ["alice"]


def test_prepare_policy_invalid_key_raises():
    with pytest.raises(ValueError):
        prepare_policy({"not-a-key": None})


def test_match_filter_allows_request():
    pol = PublicKeyPolicy(allowed_requests=["block"])
    assert match_filter(pol, None, "block") is None


def test_match_filter_rejects_kind():
    pol = PublicKeyPolicy(allowed_requests=["block"])
    with pytest.raises(PolicyError, match="request kind `attestation' is not allowed"):
        match_filter(pol, None, "attestation")


def test_match_filter_requires_authentication():
    pol = PublicKeyPolicy(allowed_requests=["block"], authorized_key_hashes=[CLIENT])
    with pytest.raises(PolicyError, match="authentication required"):
        match_filter(pol, None, "block")


def test_match_filter_rejects_unknown_client():
    pol = PublicKeyPolicy(allowed_requests=["block"], authorized_key_hashes=[CLIENT])
    with pytest.raises(PolicyError) as info:
        match_filter(pol, OTHER, "block")
    assert str(info.value) == f"client `{OTHER.to_b58()}' is not allowed"
    assert info.value.http_status == 403


def test_match_filter_accepts_known_client():
    pol = PublicKeyPolicy(allowed_requests=["block"], authorized_key_hashes=[OTHER, CLIENT])
    assert match_filter(pol, CLIENT, "block") is None


def test_match_filter_checks_operations():
    pol = PublicKeyPolicy(allowed_requests=["generic"], allowed_ops=["transaction"])
    assert match_filter(pol, None, "generic", ["transaction", "transaction"]) is None
    with pytest.raises(PolicyError, match="operation `delegation' is not allowed"):
        match_filter(pol, None, "generic", ["transaction", "delegation"])


def test_match_filter_no_ops_allowed_by_default():
    pol = PublicKeyPolicy(allowed_requests=["generic"])
    with pytest.raises(PolicyError):
        match_filter(pol, None, "generic", ["reveal"])


def test_jwt_verify_user_without_restriction():
    pol = PublicKeyPolicy()
    assert jwt_verify_user("anyone", pol, SIGNER) is None


def test_jwt_verify_user_allowed_and_denied():
    pol = PublicKeyPolicy(authorized_jwt_users=["alice", "bob"])
    assert jwt_verify_user("bob", pol, SIGNER) is None
    with pytest.raises(PolicyError) as info:
        jwt_verify_user("mallory", pol, SIGNER)
    assert str(info.value) == f"user `mallory' is not authorized to access {SIGNER}"


def test_jwt_verify_user_empty_list_denies_everyone():
    pol = PublicKeyPolicy(authorized_jwt_users=[])
    with pytest.raises(PolicyError):
        jwt_verify_user("alice", pol, SIGNER)