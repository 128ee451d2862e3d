"""Tests for the bucket policy algebra."""

from __future__ import annotations

import json

import pytest

from s3_broker.errors import (
    NoPolicyStatementError,
    PolicyParseError,
    PolicyShapeError,
    UnknownPermissionError,
    ValidationError,
)
from s3_broker.policy import (
    Permission,
    PolicyDocument,
    Principal,
    build_statement,
    merge_statement,
    parse_policy,
    remove_statement_for_principal,
)

USER_1 = "arn:aws:iam::123456789012:user/paas-s3-broker/paas-s3-broker-b1"
USER_2 = "arn:aws:iam::123456789012:user/paas-s3-broker/paas-s3-broker-b2"
USER_3 = "arn:aws:iam::123456789012:user/paas-s3-broker/paas-s3-broker-b3"


def _principals(document: PolicyDocument) -> list[str]:
    return [arn for stmt in document.statements for arn in stmt.principal.arns]


def _equivalent(a: PolicyDocument | None, b: PolicyDocument) -> bool:
    """Policies are equivalent when they grant the same statements."""
    a_statements = [] if a is None else [s.to_wire() for s in a.statements]
    return a_statements == [s.to_wire() for s in b.statements]


class TestBuildStatement:
    """Test cases for build_statement."""

    def test_read_only_statement(self):
        """Test that read-only grants reads but no writes."""
        stmt = build_statement("bucket-1", USER_1, Permission.READ_ONLY)
        assert stmt.effect == "Allow"
        assert "s3:GetObject" in stmt.actions
        assert "s3:PutObject" not in stmt.actions
        assert "s3:DeleteObject" not in stmt.actions
        assert stmt.resources == ("arn:aws:s3:::bucket-1", "arn:aws:s3:::bucket-1/*")
        assert stmt.principal.arns == (USER_1,)

    def test_read_write_statement(self):
        """Test that read-write grants reads and writes."""
        stmt = build_statement("bucket-1", USER_1, "read-write")
        assert stmt.actions == (
            "s3:GetBucketLocation",
            "s3:ListBucket",
            "s3:GetBucketCORS",
            "s3:PutBucketCORS",
            "s3:GetObject",
            "s3:PutObject",
            "s3:DeleteObject",
        )

    def test_public_read_statement(self):
        """Test the wildcard public-read statement."""
        stmt = build_statement("bucket-1", "*", Permission.PUBLIC_READ)
        assert stmt.actions == ("s3:GetObject",)
        assert stmt.to_wire()["Principal"] == {"AWS": "*"}

    def test_none_statement_has_no_actions(self):
        """Test that the none level grants nothing."""
        stmt = build_statement("bucket-1", USER_1, Permission.NONE)
        assert stmt.actions == ()
        assert stmt.to_wire()["Action"] == []

    def test_unknown_permission(self):
        """Test that unknown permission names are rejected."""
        with pytest.raises(UnknownPermissionError):
            build_statement("bucket-1", USER_1, "admin")


class TestMergeStatement:
    """Test cases for merge_statement."""

    def test_merge_into_absent_policy(self):
        """Test that a missing policy produces a fresh document."""
        stmt = build_statement("bucket-1", USER_1, Permission.READ_ONLY)
        for existing in (None, "", "   "):
            document = merge_statement(existing, stmt)
            assert document.version == "2012-10-17"
            assert document.statements == (stmt,)

    def test_merge_appends_to_existing_policy(self):
        """Test that existing statements are kept and the new one appended."""
        first = merge_statement(None, build_statement("bucket-1", USER_1, Permission.READ_ONLY))
        second = merge_statement(first.to_json(), build_statement("bucket-1", USER_2, Permission.READ_WRITE))

        assert len(second.statements) == 2
        assert _principals(second) == [USER_1, USER_2]
        assert second.statements[0] == first.statements[0]

    def test_merge_preserves_unknown_keys(self):
        """Test that Sid, Condition and Id survive a merge."""
        existing = json.dumps({
            "Version": "2012-10-17",
            "Id": "policy-id",
            "Statement": [{
                "Sid": "keep-me",
                "Effect": "Allow",
                "Principal": {"AWS": USER_3},
                "Action": "s3:GetObject",
                "Resource": "arn:aws:s3:::bucket-1/*",
                "Condition": {"Bool": {"aws:SecureTransport": "true"}},
            }],
        })
        document = merge_statement(existing, build_statement("bucket-1", USER_1, Permission.READ_ONLY))
        wire = document.to_dict()

        assert wire["Id"] == "policy-id"
        assert wire["Statement"][0]["Sid"] == "keep-me"
        assert wire["Statement"][0]["Condition"] == {"Bool": {"aws:SecureTransport": "true"}}
        assert wire["Statement"][0]["Action"] == ["s3:GetObject"]

    def test_merge_malformed_json(self):
        """Test that malformed JSON is a parse error."""
        stmt = build_statement("bucket-1", USER_1, Permission.READ_ONLY)
        with pytest.raises(PolicyParseError):
            merge_statement("{not json", stmt)

    @pytest.mark.parametrize(
        "existing",
        [
            '{"foo": "bar"}',
            "[1, 2, 3]",
            '"a string"',
            '{"Version": "2012-10-17", "Statement": "nope"}',
            '{"Version": "2012-10-17", "Statement": [{"Effect": "Allow", "Action": 7}]}',
        ],
    )
    def test_merge_wrong_shape(self, existing):
        """Test that well-formed JSON that is not a policy is a shape error."""
        stmt = build_statement("bucket-1", USER_1, Permission.READ_ONLY)
        with pytest.raises(PolicyShapeError):
            merge_statement(existing, stmt)

    def test_parse_and_shape_errors_are_validation_errors(self):
        """Test that both error kinds classify as validation failures."""
        assert issubclass(PolicyParseError, ValidationError)
        assert issubclass(PolicyShapeError, ValidationError)
        assert not issubclass(PolicyParseError, PolicyShapeError)

    def test_merge_is_order_independent_for_distinct_principals(self):
        """Test that merging two principals in either order grants both."""
        s1 = build_statement("bucket-1", USER_1, Permission.READ_ONLY)
        s2 = build_statement("bucket-1", USER_2, Permission.READ_WRITE)

        forward = merge_statement(merge_statement(None, s1), s2)
        backward = merge_statement(merge_statement(None, s2), s1)

        for document in (forward, backward):
            by_principal = {stmt.principal.arns: stmt.actions for stmt in document.statements}
            assert by_principal == {(USER_1,): s1.actions, (USER_2,): s2.actions}


class TestPrincipalEncoding:
    """Test cases for reading and writing principals."""

    def test_string_and_single_element_list_parse_identically(self):
        """Test that both encodings of one principal parse to the same value."""
        as_string = parse_policy(json.dumps({
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Principal": {"AWS": USER_1}, "Action": ["s3:GetObject"], "Resource": []}],
        }))
        as_list = parse_policy(json.dumps({
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Principal": {"AWS": [USER_1]}, "Action": ["s3:GetObject"], "Resource": []}],
        }))
        assert as_string == as_list

    def test_bare_wildcard_principal(self):
        """Test that a bare "*" principal is accepted."""
        principal = Principal.from_wire("*")
        assert principal.arns == ("*",)

    def test_canonical_encoding(self):
        """Test that one principal is written as a string and several as a list."""
        assert Principal(arns=(USER_1,)).to_wire() == {"AWS": USER_1}
        assert Principal(arns=(USER_1, USER_2)).to_wire() == {"AWS": [USER_1, USER_2]}

    def test_other_principal_types_are_preserved(self):
        """Test that non-AWS principals are carried through untouched."""
        principal = Principal.from_wire({"AWS": USER_1, "Service": "logging.s3.amazonaws.com"})
        assert principal.to_wire() == {"Service": "logging.s3.amazonaws.com", "AWS": USER_1}


class TestRemoveStatementForPrincipal:
    """Test cases for remove_statement_for_principal."""

    def _document(self, *principal_values):
        return json.dumps({
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"AWS": value},
                    "Action": ["s3:GetObject"],
                    "Resource": ["arn:aws:s3:::bucket-1", "arn:aws:s3:::bucket-1/*"],
                }
                for value in principal_values
            ],
        })

    def test_removes_statement_with_string_principal(self):
        """Test that a statement whose only principal matches is dropped."""
        document = remove_statement_for_principal(self._document(USER_1, USER_2), "/paas-s3-broker-b1")
        assert _principals(document) == [USER_2]

    def test_removes_statement_with_single_element_list(self):
        """Test that a one-element principal list is handled like a string."""
        document = remove_statement_for_principal(self._document([USER_1], USER_2), "/paas-s3-broker-b1")
        assert len(document.statements) == 1
        assert _principals(document) == [USER_2]

    def test_removes_only_matching_entry_from_list(self):
        """Test that other principals in a shared statement are kept."""
        document = remove_statement_for_principal(self._document([USER_1, USER_2, USER_3]), "/paas-s3-broker-b2")
        assert len(document.statements) == 1
        assert document.statements[0].principal.arns == (USER_1, USER_3)

    def test_never_leaves_empty_principal(self):
        """Test that a statement emptied of principals is absent, not empty."""
        document = remove_statement_for_principal(self._document([USER_1], USER_1), "/paas-s3-broker-b1")
        assert document.statements == ()
        assert document.is_empty
        assert document.to_dict()["Statement"] == []

    def test_no_matching_statement(self):
        """Test that nothing to remove is reported as its own error."""
        with pytest.raises(NoPolicyStatementError):
            remove_statement_for_principal(self._document(USER_2), "/paas-s3-broker-b1")

    def test_absent_policy_has_nothing_to_remove(self):
        """Test that an absent policy reports nothing to remove."""
        with pytest.raises(NoPolicyStatementError):
            remove_statement_for_principal(None, "/paas-s3-broker-b1")

    def test_suffix_must_match_whole_name(self):
        """Test that a binding id that is a suffix of another's is not confused."""
        other = "arn:aws:iam::123456789012:user/paas-s3-broker/paas-s3-broker-xb1"
        document = remove_statement_for_principal(self._document(other, USER_1), "/paas-s3-broker/paas-s3-broker-b1")
        assert _principals(document) == [other]

    def test_statements_without_principal_are_kept(self):
        """Test that statements with no Principal key are left alone."""
        raw = json.dumps({
            "Version": "2012-10-17",
            "Statement": [
                {"Effect": "Deny", "Action": "s3:*", "Resource": "*"},
                {"Effect": "Allow", "Principal": {"AWS": USER_1}, "Action": "s3:GetObject", "Resource": "*"},
            ],
        })
        document = remove_statement_for_principal(raw, "/paas-s3-broker-b1")
        assert len(document.statements) == 1
        assert document.statements[0].effect == "Deny"

    def test_empty_suffix_rejected(self):
        """Test that an empty suffix does not match everything."""
        with pytest.raises(ValidationError):
            remove_statement_for_principal(self._document(USER_1), "")

    @pytest.mark.parametrize("starting", [None, "one", "two"])
    def test_merge_then_remove_is_identity(self, starting):
        """Test that removing a just-merged principal restores the policy."""
        existing = None
        if starting == "one":
            existing = merge_statement(None, build_statement("bucket-1", USER_2, Permission.READ_ONLY))
        elif starting == "two":
            existing = merge_statement(
                merge_statement(None, build_statement("bucket-1", USER_2, Permission.READ_ONLY)),
                build_statement("bucket-1", USER_3, Permission.READ_WRITE),
            )

        merged = merge_statement(existing, build_statement("bucket-1", USER_1, Permission.READ_WRITE))
        restored = remove_statement_for_principal(merged.to_json(), "/paas-s3-broker-b1")

        assert _equivalent(existing, restored)
