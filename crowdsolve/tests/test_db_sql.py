import unittest

from crowdsolve.db import SqlRecordStore
from crowdsolve.errors import Conflict


class SqlRecordStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store logic.
    """

    def setUp(self):
        self.db = SqlRecordStore("sqlite+pysqlite:///:memory:")
        self.user = self.db.create_user("alice", "alice@example.com", "hash")

    def test_users(self):
        self.assertEqual(self.db.get_user(self.user.id).username, "alice")
        self.assertEqual(self.db.find_user_by_email("alice@example.com").id, self.user.id)
        self.assertIsNone(self.db.find_user_by_email("bob@example.com"))
        self.assertEqual(
            self.db.find_user_by_email_or_username("x@example.com", "alice").id, self.user.id
        )
        self.assertEqual(set(self.db.get_users([self.user.id, "missing"])), {self.user.id})
        self.assertEqual(self.db.get_users([]), {})

    def test_unique_constraints_raise_conflict(self):
        with self.assertRaises(Conflict):
            self.db.create_user("alice", "other@example.com", "hash")
        with self.assertRaises(Conflict):
            self.db.create_user("bob", "alice@example.com", "hash")

    def test_problem_lifecycle(self):
        first = self.db.create_problem(
            title="a", description="d", location="l", posted_by=self.user.id
        )
        second = self.db.create_problem(
            title="b", description="d", location="l", posted_by=self.user.id, image="ref"
        )
        self.assertEqual(first.status, "open")
        self.assertIsNotNone(first.created_at.tzinfo)
        self.assertEqual([p.id for p in self.db.list_problems()], [second.id, first.id])

        updated = self.db.update_problem(first.id, {"title": "a2", "status": "solved"})
        self.assertEqual(updated.title, "a2")
        self.assertEqual(updated.status, "solved")
        self.assertEqual(updated.description, "d")
        self.assertIsNone(self.db.update_problem("missing", {"title": "x"}))

        self.assertTrue(self.db.delete_problem(first.id))
        self.assertFalse(self.db.delete_problem(first.id))
        self.assertIsNone(self.db.get_problem(first.id))
        self.assertEqual(self.db.get_problem(second.id).image, "ref")

    def test_toggle_upvote(self):
        problem = self.db.create_problem(
            title="a", description="d", location="l", posted_by=self.user.id
        )
        solution = self.db.create_solution(
            description="fix", problem_id=problem.id, posted_by=self.user.id
        )
        self.assertEqual(solution.upvotes, [])

        toggled = self.db.toggle_upvote(solution.id, self.user.id)
        self.assertEqual(toggled.upvotes, [self.user.id])
        self.assertEqual(self.db.get_solution(solution.id).upvotes, [self.user.id])

        toggled = self.db.toggle_upvote(solution.id, self.user.id)
        self.assertEqual(toggled.upvotes, [])
        self.assertIsNone(self.db.toggle_upvote("missing", self.user.id))

    def test_solutions_and_comments_are_scoped_and_newest_first(self):
        first = self.db.create_solution(description="1", problem_id="p1", posted_by=self.user.id)
        second = self.db.create_solution(description="2", problem_id="p1", posted_by=self.user.id)
        self.db.create_solution(description="3", problem_id="p2", posted_by=self.user.id)
        self.assertEqual([s.id for s in self.db.list_solutions("p1")], [second.id, first.id])

        older = self.db.create_comment(text="x", solution_id=first.id, posted_by=self.user.id)
        newer = self.db.create_comment(text="y", solution_id=first.id, posted_by=self.user.id)
        self.assertEqual([c.id for c in self.db.list_comments(first.id)], [newer.id, older.id])
        self.assertEqual(self.db.list_comments(second.id), [])


if __name__ == "__main__":
    unittest.main()
