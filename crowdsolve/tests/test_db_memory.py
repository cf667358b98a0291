import threading
import unittest

from crowdsolve.db import InMemoryRecordStore


class InMemoryRecordStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryRecordStore()
        self.user = self.db.create_user("alice", "alice@example.com", "hash")

    def test_reads_return_copies(self):
        problem = self.db.create_problem(
            title="a", description="d", location="l", posted_by=self.user.id
        )
        self.db.get_problem(problem.id).title = "changed"
        self.assertEqual(self.db.get_problem(problem.id).title, "a")

    def test_reads_are_safe_during_concurrent_inserts(self):
        errors = []
        stop = threading.Event()

        def writer():
            try:
                for i in range(2000):
                    user = self.db.create_user(f"u{i}", f"u{i}@example.com", "hash")
                    problem = self.db.create_problem(
                        title="t", description="d", location="l", posted_by=user.id
                    )
                    solution = self.db.create_solution(
                        description="s", problem_id=problem.id, posted_by=user.id
                    )
                    self.db.create_comment(
                        text="c", solution_id=solution.id, posted_by=user.id
                    )
            except Exception as exc:
                errors.append(exc)
            finally:
                stop.set()

        def reader():
            try:
                while not stop.is_set():
                    self.db.find_user_by_email("missing@example.com")
                    self.db.find_user_by_email_or_username("missing@example.com", "nobody")
                    self.db.get_users([self.user.id, "missing"])
                    self.db.list_problems()
                    self.db.list_solutions("missing")
                    self.db.list_comments("missing")
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(errors, [])
        self.assertEqual(len(self.db.list_problems()), 2000)


if __name__ == "__main__":
    unittest.main()
