"""Exceptions raised inside the exam-taking path."""


class ExamConfigurationError(Exception):
    """Candidate cannot start an exam: missing assignment, paper or record."""


class ScoringError(Exception):
    """The external scoring service failed or returned an unusable reply."""
