"""
Tests for the journaled state store and the database wrapper under it.
"""
import unittest
import shutil
import tempfile
from quorum_wallet.db import DB
from quorum_wallet.state import StateStore, BLANK_ROOT


class TestStateStore(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db = DB(self.test_dir)
        self.state = StateStore(self.db)

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.test_dir)

    def test_writes_are_buffered_until_commit(self):
        self.state.set(b'key', b'value')
        self.assertEqual(self.state.get(b'key'), b'value')
        self.assertIsNone(self.db.get(b'key'))
        self.assertTrue(self.state.dirty)

        self.state.commit()
        self.assertEqual(self.db.get(b'key'), b'value')
        self.assertFalse(self.state.dirty)

    def test_encoded_values(self):
        self.state.set_obj(b'obj', {'balance': 5, 'owner': b'\x01' * 20, 'list': [1, 2]})
        self.state.commit()

        fresh = StateStore(self.db)
        self.assertEqual(fresh.get_obj(b'obj'), {'balance': 5, 'owner': b'\x01' * 20, 'list': [1, 2]})
        self.assertEqual(fresh.get_obj(b'missing', 'default'), 'default')

    def test_revert_undoes_writes_after_snapshot(self):
        self.state.set(b'a', b'1')
        snapshot = self.state.snapshot()
        self.state.set(b'a', b'2')
        self.state.set(b'b', b'3')
        self.state.delete(b'a')

        self.state.revert(snapshot)
        self.assertEqual(self.state.get(b'a'), b'1')
        self.assertIsNone(self.state.get(b'b'))

    def test_nested_snapshots(self):
        outer = self.state.snapshot()
        self.state.set(b'x', b'outer')
        inner = self.state.snapshot()
        self.state.set(b'x', b'inner')
        self.state.set(b'y', b'inner')

        self.state.revert(inner)
        self.assertEqual(self.state.get(b'x'), b'outer')
        self.assertIsNone(self.state.get(b'y'))

        self.state.revert(outer)
        self.assertIsNone(self.state.get(b'x'))
        self.assertFalse(self.state.dirty)

    def test_revert_of_committed_key_restores_database_value(self):
        self.state.set(b'k', b'old')
        self.state.commit()

        snapshot = self.state.snapshot()
        self.state.delete(b'k')
        self.assertIsNone(self.state.get(b'k'))
        self.state.revert(snapshot)
        self.assertEqual(self.state.get(b'k'), b'old')

    def test_delete_is_committed(self):
        self.state.set(b'k', b'v')
        self.state.commit()
        self.state.delete(b'k')
        self.state.commit()
        self.assertFalse(self.db.exists(b'k'))

    def test_unknown_snapshot(self):
        with self.assertRaises(ValueError):
            self.state.revert(5)

    def test_state_root(self):
        self.assertEqual(self.state.state_root(), BLANK_ROOT)

        self.state.set(b'a', b'1')
        self.state.set(b'b', b'2')
        pending_root = self.state.state_root()
        self.assertNotEqual(pending_root, BLANK_ROOT)

        self.state.commit()
        self.assertEqual(self.state.state_root(), pending_root)

        self.state.set(b'b', b'3')
        self.assertNotEqual(self.state.state_root(), pending_root)
        self.state.delete(b'b')
        self.state.set(b'b', b'2')
        self.assertEqual(self.state.state_root(), pending_root)

    def test_items_overlay(self):
        self.state.set(b'p:1', b'a')
        self.state.set(b'p:2', b'b')
        self.state.set(b'q:1', b'c')
        self.state.commit()
        self.state.delete(b'p:1')
        self.state.set(b'p:3', b'd')

        self.assertEqual(self.state.items(b'p:'), [(b'p:2', b'b'), (b'p:3', b'd')])


class TestDB(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db = DB(self.test_dir)

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.test_dir)

    def test_apply_batch(self):
        self.db.put(b'gone', b'x')
        self.db.apply({b'one': b'1', b'two': b'2', b'gone': None})
        self.assertEqual(self.db.get(b'one'), b'1')
        self.assertEqual(self.db.get(b'two'), b'2')
        self.assertFalse(self.db.exists(b'gone'))

    def test_prefix_reads(self):
        self.db.put(b'a:1', b'1')
        self.db.put(b'a:2', b'2')
        self.db.put(b'b:1', b'3')
        self.assertEqual(self.db.get_prefix(b'a:'), [(b'a:1', b'1'), (b'a:2', b'2')])
        self.assertEqual(len(self.db.get_prefix(b'')), 3)

    def test_closed_database_rejects_reads(self):
        self.db.close()
        self.assertTrue(self.db.is_closed())
        with self.assertRaises(RuntimeError):
            self.db.get(b'key')
        # tearDown closes again; close is idempotent
        self.db.close()


if __name__ == '__main__':
    unittest.main()
