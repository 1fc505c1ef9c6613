"""Tests for transaction options and signed envelopes."""

import asyncio

import pytest
import rlp
from eth_account import Account
from eth_utils import keccak

from conftest import OTHER_KEY, SCALAR_ONE_ADDRESS
from rollup_tx.errors import ChainClientError, OptionsConstructionFailed
from rollup_tx.signing.base import SECP256K1_HALF_N
from rollup_tx.signing.factory import load_local_signer
from rollup_tx.signing.kms import KMSSigner
from rollup_tx.transact.envelope import build_transaction, sign_transaction
from rollup_tx.transact.options import (
    MAX_UINT64,
    OptionsBuilder,
    TransactionOptions,
    TxType,
)

ROLLUP_ADDRESS = "0x0000000000000000000000000000000000001234"


class TestOptionsBuilder:
    """Tests for building TransactionOptions."""

    @pytest.mark.asyncio
    async def test_auto_nonce_fetches_once(self, local_signer, chain_client):
        """Test that an omitted nonce is fetched exactly once."""
        builder = OptionsBuilder(chain_client)

        options = await builder.build(local_signer, 56, 1_000_000_000, 5_000_000)

        assert options.nonce == 5
        assert options.from_address == SCALAR_ONE_ADDRESS
        chain_client.get_pending_nonce.assert_awaited_once_with(SCALAR_ONE_ADDRESS)

    @pytest.mark.asyncio
    async def test_explicit_nonce_skips_lookup(self, local_signer, chain_client):
        """Test that an explicit nonce is used verbatim without a chain call."""
        builder = OptionsBuilder(chain_client)

        options = await builder.build(local_signer, 56, 1_000_000_000, 5_000_000, nonce=42)

        assert options.nonce == 42
        chain_client.get_pending_nonce.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nonce_zero_is_explicit(self, local_signer, chain_client):
        """Test that nonce 0 is not mistaken for 'unset'."""
        options = await OptionsBuilder(chain_client).build(
            local_signer, 56, 1_000_000_000, 5_000_000, nonce=0
        )

        assert options.nonce == 0
        chain_client.get_pending_nonce.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_build_is_repeatable(self, local_signer, chain_client):
        """Test that identical inputs and chain state give equal options."""
        builder = OptionsBuilder(chain_client)

        first = await builder.build(local_signer, 56, 7, 21000)
        second = await builder.build(local_signer, 56, 7, 21000)

        assert first == second

    @pytest.mark.asyncio
    async def test_gas_left_unset(self, local_signer, chain_client):
        """Test that None gas fields stay None for later resolution."""
        options = await OptionsBuilder(chain_client).build(local_signer, 56, None, None, nonce=1)

        assert options.gas_price is None
        assert options.gas_limit is None
        assert options.as_tx_params() == {
            "from": SCALAR_ONE_ADDRESS,
            "chainId": 56,
            "nonce": 1,
        }

    @pytest.mark.asyncio
    async def test_as_tx_params(self, local_signer, chain_client):
        """Test web3 field naming of the options."""
        options = await OptionsBuilder(chain_client).build(
            local_signer, 97, 3, 100_000, nonce=9
        )

        assert options.as_tx_params() == {
            "from": SCALAR_ONE_ADDRESS,
            "chainId": 97,
            "nonce": 9,
            "gasPrice": 3,
            "gas": 100_000,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "chain_id,gas_price,gas_limit,nonce",
        [
            (0, 1, 21000, 0),                 # chain id must be positive
            (56, -1, 21000, 0),               # negative gas price
            (56, 1, 0, 0),                    # zero gas limit
            (56, 1, MAX_UINT64 + 1, 0),       # gas limit above uint64
            (56, 1, 21000, -1),               # negative nonce
            (56, 1, 21000, MAX_UINT64 + 1),   # nonce above uint64
            (56, "1", 21000, 0),              # wrong type
            (56, True, 21000, 0),             # bool is not an amount
        ],
    )
    async def test_rejects_out_of_range(
        self, local_signer, chain_client, chain_id, gas_price, gas_limit, nonce
    ):
        """Test that invalid numeric inputs raise OptionsConstructionFailed."""
        with pytest.raises(OptionsConstructionFailed):
            await OptionsBuilder(chain_client).build(
                local_signer, chain_id, gas_price, gas_limit, nonce=nonce
            )

        chain_client.get_pending_nonce.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tx_type(self, local_signer, chain_client):
        """Test that an unknown envelope format is rejected."""
        with pytest.raises(OptionsConstructionFailed):
            await OptionsBuilder(chain_client).build(
                local_signer, 56, 1, 21000, nonce=0, tx_type="blob"
            )

    @pytest.mark.asyncio
    async def test_nonce_lookup_failure_keeps_cause(self, local_signer, chain_client):
        """Test that chain errors surface as OptionsConstructionFailed with the cause."""
        error = ChainClientError("eth_getTransactionCount: header not found", code=-32000)
        chain_client.get_pending_nonce.side_effect = error

        with pytest.raises(OptionsConstructionFailed) as exc_info:
            await OptionsBuilder(chain_client).build(local_signer, 56, 1, 21000)

        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_nonce_lookup_timeout(self, local_signer, chain_client):
        """Test that a stalled nonce lookup is bounded by the timeout."""

        async def stalled(address):
            await asyncio.sleep(1.0)
            return 5

        chain_client.get_pending_nonce.side_effect = stalled

        with pytest.raises(OptionsConstructionFailed, match="timed out"):
            await OptionsBuilder(chain_client, timeout=0.05).build(local_signer, 56, 1, 21000)


class TestSignedEnvelope:
    """Tests for signing and serializing transactions."""

    def _options(self, signer, tx_type=TxType.LEGACY, nonce=5):
        return TransactionOptions(
            signer=signer,
            chain_id=56,
            nonce=nonce,
            gas_price=1_000_000_000,
            gas_limit=21000,
            tx_type=tx_type,
        )

    @pytest.mark.asyncio
    async def test_legacy_envelope(self, local_signer):
        """Test EIP-155 fields of a signed legacy transaction."""
        tx = build_transaction(self._options(local_signer), ROLLUP_ADDRESS, "0xdeadbeef")

        signed = await sign_transaction(tx, local_signer)
        fields = rlp.decode(signed.raw_transaction)

        assert int.from_bytes(fields[0], "big") == 5                 # nonce
        assert int.from_bytes(fields[1], "big") == 1_000_000_000     # gasPrice
        assert int.from_bytes(fields[2], "big") == 21000             # gas
        assert fields[3] == bytes.fromhex(ROLLUP_ADDRESS[2:])
        assert fields[5] == bytes.fromhex("deadbeef")
        assert int.from_bytes(fields[6], "big") in (147, 148)        # v = 56 * 2 + 35 + rid
        assert int.from_bytes(fields[8], "big") <= SECP256K1_HALF_N

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tx_type", [TxType.LEGACY, TxType.ACCESS_LIST])
    async def test_recovers_sender(self, tx_type):
        """Test that the signed transaction recovers to the signer address."""
        signer = load_local_signer(OTHER_KEY)
        tx = build_transaction(self._options(signer, tx_type), ROLLUP_ADDRESS, "0x")

        signed = await sign_transaction(tx, signer)

        assert Account.recover_transaction(signed.raw_transaction) == signer.address

    @pytest.mark.asyncio
    async def test_access_list_envelope(self, local_signer):
        """Test that typed envelopes carry the type byte and a raw recovery id."""
        tx = build_transaction(
            self._options(local_signer, TxType.ACCESS_LIST), ROLLUP_ADDRESS, "0x"
        )

        signed = await sign_transaction(tx, local_signer)
        fields = rlp.decode(signed.raw_transaction[1:])

        assert signed.raw_transaction[0] == 1
        assert int.from_bytes(fields[0], "big") == 56                # chainId
        assert int.from_bytes(fields[8], "big") in (0, 1)            # yParity

    @pytest.mark.asyncio
    async def test_hash_is_keccak_of_raw(self, local_signer):
        """Test that the envelope hash is keccak256 of the raw bytes."""
        tx = build_transaction(self._options(local_signer), ROLLUP_ADDRESS, "0x")

        signed = await sign_transaction(tx, local_signer)

        assert signed.hash == "0x" + keccak(signed.raw_transaction).hex()

    @pytest.mark.asyncio
    async def test_from_field_is_ignored(self, local_signer):
        """Test that a 'from' key does not break serialization."""
        tx = build_transaction(self._options(local_signer), ROLLUP_ADDRESS, "0x")
        tx["from"] = SCALAR_ONE_ADDRESS

        signed = await sign_transaction(tx, local_signer)

        assert Account.recover_transaction(signed.raw_transaction) == SCALAR_ONE_ADDRESS

    @pytest.mark.asyncio
    async def test_kms_and_local_envelopes_match(self, kms_service_factory):
        """Test that a high-s KMS signer produces the same bytes as a local key."""
        local = load_local_signer(OTHER_KEY)
        kms = KMSSigner(
            "key-1", local.address, kms_service_factory(OTHER_KEY, high_s=True)
        )
        tx = build_transaction(self._options(local), ROLLUP_ADDRESS, "0xabcdef")

        local_signed = await sign_transaction(tx, local)
        kms_signed = await sign_transaction(tx, kms)

        assert kms_signed.raw_transaction == local_signed.raw_transaction
        assert kms_signed.hash == local_signed.hash
