"""Constants and raw keychain log builders shared by the test modules."""

from tempo_keys.keychain import (
    KEY_AUTHORIZED_TOPIC,
    KEY_REVOKED_TOPIC,
    SPENDING_LIMIT_UPDATED_TOPIC,
)
from tempo_keys.types import pad_address

ACCOUNT = "0x" + "11" * 20
KEY_A = "0x" + "aa" * 20
KEY_B = "0x" + "bb" * 20
TOKEN_X = "0x" + "cc" * 20
TOKEN_Y = "0x" + "dd" * 20


def _topic(address: str) -> str:
    return "0x" + pad_address(address)


def _word(value: int) -> str:
    return value.to_bytes(32, "big").hex()


def authorized_log(key_id, expiry=0, block=100, signature_type=1, account=ACCOUNT, log_index=0):
    return {
        "topics": [KEY_AUTHORIZED_TOPIC, _topic(account), _topic(key_id)],
        "data": "0x" + _word(signature_type) + _word(expiry),
        "blockNumber": block,
        "logIndex": log_index,
    }


def revoked_log(key_id, block=200, account=ACCOUNT, log_index=0):
    return {
        "topics": [KEY_REVOKED_TOPIC, _topic(account), _topic(key_id)],
        "data": "0x",
        "blockNumber": block,
        "logIndex": log_index,
    }


def limit_log(key_id, token, new_limit, block=100, account=ACCOUNT, log_index=1):
    return {
        "topics": [
            SPENDING_LIMIT_UPDATED_TOPIC,
            _topic(account),
            _topic(key_id),
            _topic(token),
        ],
        "data": "0x" + _word(new_limit),
        "blockNumber": block,
        "logIndex": log_index,
    }


def logs_by_topic(authorized=(), revoked=(), limits=()):
    """side_effect for ``get_logs`` that answers by the filter's first topic."""
    by_topic = {
        KEY_AUTHORIZED_TOPIC: list(authorized),
        KEY_REVOKED_TOPIC: list(revoked),
        SPENDING_LIMIT_UPDATED_TOPIC: list(limits),
    }

    async def get_logs(filter_params):
        return by_topic[filter_params["topics"][0]]

    return get_logs
