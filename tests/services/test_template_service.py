"""
Tests for TemplateService.

Covers:
- Creating empty templates and copies of another template's active rules
- Name uniqueness and validation
- At most one default per owner, atomic promotion
- Deletion cascades to rules with an informational warning
- Owner isolation
"""

import warnings
from uuid import uuid4

import pytest

from hostmetrics_kernel.exceptions import (
    DefaultTemplateConflictError,
    TemplateNameConflictError,
    TemplateNotEmptyOnDeleteWarning,
    TemplateNotFoundError,
    TemplateValidationError,
)
from hostmetrics_kernel.selectors.rule_selector import RuleSelector
from hostmetrics_kernel.selectors.template_selector import TemplateSelector


@pytest.fixture
def seeded_template(template_service, rule_service, owner_id, test_actor_id):
    """A template with two active rules and one inactive rule."""
    template = template_service.create_template(owner_id, "Standard", test_actor_id)
    tid = template.template_id
    rule_service.create_rule(
        owner_id, "airbnb", "mgmtFee", "[totalPayout] * 0.15", test_actor_id,
        template_id=tid, priority=1, notes="standard commission",
    )
    rule_service.create_rule(
        owner_id, "ALL", "ownerBonus", "[nights] * 5", test_actor_id, template_id=tid
    )
    inactive = rule_service.create_rule(owner_id, "vrbo", "gst", "[t] * 0.05", test_actor_id, template_id=tid)
    rule_service.deactivate_rule(inactive.rule_id, test_actor_id)
    return template


class TestCreateTemplate:
    def test_create_empty(self, template_service, owner_id, test_actor_id):
        template = template_service.create_template(
            owner_id, "  Summer 2024 ", test_actor_id, template_description="peak season"
        )
        assert template.template_name == "Summer 2024"
        assert template.template_description == "peak season"
        assert template.rule_count == 0
        assert not template.is_template_default
        assert template.owner_id == owner_id

    def test_create_as_default(self, template_service, session, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id, is_default=True)
        default = TemplateSelector(session).get_default(owner_id)
        assert default.template_id == template.template_id

    @pytest.mark.parametrize("name", ["", "   ", None, "n" * 201])
    def test_invalid_name(self, template_service, owner_id, test_actor_id, name):
        with pytest.raises(TemplateValidationError):
            template_service.create_template(owner_id, name, test_actor_id)

    def test_duplicate_name(self, template_service, owner_id, test_actor_id):
        template_service.create_template(owner_id, "Main", test_actor_id)
        with pytest.raises(TemplateNameConflictError) as exc_info:
            template_service.create_template(owner_id, "Main", test_actor_id)
        assert exc_info.value.template_name == "Main"

    def test_same_name_for_other_owner(
        self, template_service, owner_id, other_owner_id, test_actor_id
    ):
        template_service.create_template(owner_id, "Main", test_actor_id)
        assert template_service.create_template(other_owner_id, "Main", test_actor_id)

    def test_created_logged(self, template_service, owner_id, test_actor_id, captured_logs):
        template = template_service.create_template(owner_id, "Main", test_actor_id)
        created = [r for r in captured_logs() if r["message"] == "template_created"]
        assert created[0]["template_id"] == str(template.template_id)
        assert created[0]["copied_rule_count"] == 0


class TestCopyTemplate:
    def test_copies_active_rules_only(
        self, template_service, session, seeded_template, owner_id, test_actor_id
    ):
        copy = template_service.create_template(
            owner_id, "Standard (copy)", test_actor_id,
            copy_from_template_id=seeded_template.template_id,
        )
        assert copy.rule_count == 2

        copied = RuleSelector(session).list_template_rules(copy.template_id)
        source = RuleSelector(session).list_template_rules(seeded_template.template_id, active_only=True)
        assert [(r.platform, r.target_field, r.formula, r.priority, r.notes) for r in copied] == [
            (r.platform, r.target_field, r.formula, r.priority, r.notes) for r in source
        ]
        assert not {r.rule_id for r in copied} & {r.rule_id for r in source}
        assert all(r.template_id == copy.template_id for r in copied)

    def test_source_unchanged(
        self, template_service, session, seeded_template, owner_id, test_actor_id
    ):
        before = RuleSelector(session).list_template_rules(seeded_template.template_id)
        template_service.create_template(
            owner_id, "Copy", test_actor_id, copy_from_template_id=seeded_template.template_id
        )
        after = RuleSelector(session).list_template_rules(seeded_template.template_id)
        assert after == before

    def test_copied_rules_are_newer(
        self, template_service, session, seeded_template, owner_id, test_actor_id
    ):
        source = RuleSelector(session).list_template_rules(seeded_template.template_id)
        copy = template_service.create_template(
            owner_id, "Copy", test_actor_id, copy_from_template_id=seeded_template.template_id
        )
        copied = RuleSelector(session).list_template_rules(copy.template_id)
        assert min(r.creation_seq for r in copied) > max(r.creation_seq for r in source)

    def test_copy_from_other_owners_template(
        self, template_service, owner_id, other_owner_id, test_actor_id
    ):
        theirs = template_service.create_template(other_owner_id, "Theirs", test_actor_id)
        with pytest.raises(TemplateNotFoundError):
            template_service.create_template(
                owner_id, "Mine", test_actor_id, copy_from_template_id=theirs.template_id
            )

    def test_copy_from_unknown_template(self, template_service, owner_id, test_actor_id):
        with pytest.raises(TemplateNotFoundError):
            template_service.create_template(owner_id, "Mine", test_actor_id, copy_from_template_id=uuid4())


class TestDefaultTemplate:
    def test_promotion_keeps_single_default(self, template_service, session, owner_id, test_actor_id):
        first = template_service.create_template(owner_id, "First", test_actor_id, is_default=True)
        second = template_service.create_template(owner_id, "Second", test_actor_id, is_default=True)
        selector = TemplateSelector(session)
        assert selector.count_defaults(owner_id) == 1
        assert selector.get_default(owner_id).template_id == second.template_id
        assert not selector.get_template(first.template_id).is_template_default

    def test_set_default_is_idempotent(self, template_service, session, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id)
        template_service.set_default_template(template.template_id, owner_id, test_actor_id)
        again = template_service.set_default_template(template.template_id, owner_id, test_actor_id)
        assert again.is_template_default
        assert TemplateSelector(session).count_defaults(owner_id) == 1

    def test_promote_via_update(self, template_service, session, owner_id, test_actor_id):
        template_service.create_template(owner_id, "Old", test_actor_id, is_default=True)
        new = template_service.create_template(owner_id, "New", test_actor_id)
        updated = template_service.update_template(
            new.template_id, owner_id, test_actor_id, is_default=True
        )
        assert updated.is_template_default
        assert TemplateSelector(session).count_defaults(owner_id) == 1

    def test_demoting_default_rejected(self, template_service, session, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id, is_default=True)
        with pytest.raises(DefaultTemplateConflictError):
            template_service.update_template(
                template.template_id, owner_id, test_actor_id, is_default=False
            )
        assert TemplateSelector(session).count_defaults(owner_id) == 1

    def test_defaults_are_per_owner(
        self, template_service, session, owner_id, other_owner_id, test_actor_id
    ):
        template_service.create_template(owner_id, "Main", test_actor_id, is_default=True)
        template_service.create_template(other_owner_id, "Main", test_actor_id, is_default=True)
        selector = TemplateSelector(session)
        assert selector.count_defaults(owner_id) == 1
        assert selector.count_defaults(other_owner_id) == 1

    def test_promotion_logged(self, template_service, owner_id, test_actor_id, captured_logs):
        old = template_service.create_template(owner_id, "Old", test_actor_id, is_default=True)
        template_service.create_template(owner_id, "New", test_actor_id, is_default=True)
        promoted = [r for r in captured_logs() if r["message"] == "template_default_promoted"]
        assert promoted[-1]["previous_default_id"] == str(old.template_id)


class TestUpdateTemplate:
    def test_rename_keeps_id(self, template_service, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id)
        renamed = template_service.update_template(
            template.template_id, owner_id, test_actor_id,
            template_name="Primary", template_description="renamed",
        )
        assert renamed.template_id == template.template_id
        assert renamed.template_name == "Primary"
        assert renamed.template_description == "renamed"

    def test_rename_to_same_name(self, template_service, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id)
        assert template_service.update_template(
            template.template_id, owner_id, test_actor_id, template_name="Main"
        ).template_name == "Main"

    def test_rename_conflict(self, template_service, owner_id, test_actor_id):
        template_service.create_template(owner_id, "Main", test_actor_id)
        other = template_service.create_template(owner_id, "Other", test_actor_id)
        with pytest.raises(TemplateNameConflictError):
            template_service.update_template(other.template_id, owner_id, test_actor_id, template_name="Main")

    def test_blank_rename(self, template_service, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id)
        with pytest.raises(TemplateValidationError):
            template_service.update_template(template.template_id, owner_id, test_actor_id, template_name=" ")

    def test_foreign_template(self, template_service, owner_id, other_owner_id, test_actor_id):
        theirs = template_service.create_template(other_owner_id, "Theirs", test_actor_id)
        with pytest.raises(TemplateNotFoundError):
            template_service.update_template(theirs.template_id, owner_id, test_actor_id, template_name="x")


class TestDeleteTemplate:
    def test_delete_cascades_with_warning(
        self, template_service, session, seeded_template, owner_id
    ):
        with pytest.warns(TemplateNotEmptyOnDeleteWarning) as record:
            result = template_service.delete_template(seeded_template.template_id, owner_id)
        assert result.deleted_rule_count == 3
        warning = next(
            w.message for w in record if isinstance(w.message, TemplateNotEmptyOnDeleteWarning)
        )
        assert warning.deleted_rule_count == 3
        assert RuleSelector(session).list_rules(owner_id) == []
        with pytest.raises(TemplateNotFoundError):
            TemplateSelector(session).get_template(seeded_template.template_id)

    def test_delete_empty_template_no_warning(self, template_service, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Empty", test_actor_id)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = template_service.delete_template(template.template_id, owner_id)
        assert result.deleted_rule_count == 0

    def test_global_rules_survive(
        self, template_service, rule_service, session, seeded_template, owner_id, test_actor_id
    ):
        global_rule = rule_service.create_rule(owner_id, "ALL", "mgmtFee", "1", test_actor_id)
        with pytest.warns(TemplateNotEmptyOnDeleteWarning):
            template_service.delete_template(seeded_template.template_id, owner_id)
        assert [r.rule_id for r in RuleSelector(session).list_rules(owner_id)] == [global_rule.rule_id]

    def test_deleting_default_leaves_no_default(self, template_service, session, owner_id, test_actor_id):
        template = template_service.create_template(owner_id, "Main", test_actor_id, is_default=True)
        result = template_service.delete_template(template.template_id, owner_id)
        assert result.was_default
        assert TemplateSelector(session).get_default(owner_id) is None

    def test_foreign_template(self, template_service, owner_id, other_owner_id, test_actor_id):
        theirs = template_service.create_template(other_owner_id, "Theirs", test_actor_id)
        with pytest.raises(TemplateNotFoundError):
            template_service.delete_template(theirs.template_id, owner_id)
