"""Tests for OptimisticOverlay."""

from tempo_keys.access_key import AccessKey, PendingKey
from tempo_keys.overlay import KeyStatus, OptimisticOverlay

K1 = "0x" + "a1" * 20
K2 = "0x" + "a2" * 20


def confirmed(key_id, block=100):
    return AccessKey(key_id=key_id, signature_type="p256", expiry=0, block_number=block)


class TestPending:
    def test_add_and_merge(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K2, expiry=0, tx_hash="0xabc"))

        views = overlay.merge([confirmed(K1)])

        assert [(v.key_id, v.status) for v in views] == [
            (K1, KeyStatus.ACTIVE),
            (K2, KeyStatus.PENDING),
        ]
        assert views[1].tx_hash == "0xabc"
        assert overlay.has_outstanding

    def test_add_replaces_same_key(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=1))
        overlay.add_pending(PendingKey(key_id=K1.upper().replace("0X", "0x"), expiry=2))

        assert len(overlay.pending) == 1
        assert overlay.pending[0].expiry == 2

    def test_confirmed_key_not_duplicated(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=0))

        views = overlay.merge([confirmed(K1)])

        assert [v.status for v in views] == [KeyStatus.ACTIVE]

    def test_reconcile_clears_confirmed(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=0))
        overlay.add_pending(PendingKey(key_id=K2, expiry=0))

        overlay.reconcile([confirmed(K1)])

        assert [p.key_id for p in overlay.pending] == [K2]

    def test_discard(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=0))

        overlay.discard_pending(K1)

        assert overlay.pending == ()
        assert not overlay.has_outstanding


class TestPendingHealing:
    NOW = 1_700_000_000

    def test_expired_pending_dropped(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=self.NOW - 1))
        overlay.add_pending(PendingKey(key_id=K2, expiry=self.NOW + 60))

        overlay.reconcile([], now=self.NOW)

        assert [p.key_id for p in overlay.pending] == [K2]

    def test_expiry_equal_to_now_is_expired(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=self.NOW))

        assert overlay.prune_expired(self.NOW) == [K1]
        assert not overlay.has_outstanding

    def test_never_expiring_pending_kept(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=0))

        overlay.reconcile([], now=self.NOW)

        assert len(overlay.pending) == 1

    def test_merge_hides_expired_pending(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=self.NOW - 1))

        assert overlay.merge([], now=self.NOW) == ()

    def test_revoked_before_seen_clears_pending(self):
        overlay = OptimisticOverlay()
        overlay.add_pending(PendingKey(key_id=K1, expiry=0))
        overlay.add_pending(PendingKey(key_id=K2, expiry=0))

        overlay.reconcile([], revoked_key_ids=[K1.upper().replace("0X", "0x")])

        assert [p.key_id for p in overlay.pending] == [K2]


class TestRevoking:
    def test_marked_key_shown_revoking(self):
        overlay = OptimisticOverlay()
        overlay.mark_revoking(K1, "0xdef")

        views = overlay.merge([confirmed(K1)])

        assert views[0].status is KeyStatus.REVOKING
        assert views[0].tx_hash == "0xdef"
        assert overlay.revoke_tx_hash(K1) == "0xdef"

    def test_mark_stays_while_key_on_chain(self):
        overlay = OptimisticOverlay()
        overlay.mark_revoking(K1)

        overlay.reconcile([confirmed(K1)])

        assert overlay.revoking == {K1}

    def test_mark_cleared_once_key_gone(self):
        overlay = OptimisticOverlay()
        overlay.mark_revoking(K1)

        cleared = overlay.clear_revoked([K2])

        assert cleared == [K1]
        assert overlay.revoking == frozenset()

    def test_unmark(self):
        overlay = OptimisticOverlay()
        overlay.mark_revoking(K1.upper().replace("0X", "0x"))

        overlay.unmark_revoking(K1)

        assert not overlay.has_outstanding
