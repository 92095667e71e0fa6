"""
Tests for the signup aggregate and its structural merge.
"""

import json

import pytest

from signup.state import (
    CallPreferences,
    PersonalInfo,
    SignupData,
    UserType,
    VerificationMethod,
    merge_record,
    merge_signup_data,
)


class TestDefaults:
    def test_default_aggregate(self):
        data = SignupData()
        assert data.user_type is None
        assert data.verification_method is None
        assert data.current_step == 1
        assert data.is_verified is False
        assert data.personal_info == PersonalInfo()
        assert data.call_preferences.days == []
        assert data.call_preferences.time_of_day == "afternoon"
        assert data.call_preferences.default_time == "14:00"

    def test_nested_defaults_not_shared(self):
        a, b = SignupData(), SignupData()
        a.call_preferences.days.append("monday")
        assert b.call_preferences.days == []


class TestSerialization:
    def test_enums_stored_by_value(self):
        data = SignupData(user_type=UserType.LOVED_ONE, verification_method=VerificationMethod.PHONE)
        d = data.to_dict()
        assert d["user_type"] == "loved-one"
        assert d["verification_method"] == "phone"
        json.dumps(d)

    def test_json_restores_equal_aggregate(self, sample_signup_data):
        assert SignupData.from_json(sample_signup_data.to_json()) == sample_signup_data

    def test_partial_payload_overlays_defaults(self):
        data = SignupData.from_dict({"current_step": 3, "personal_info": {"first_name": "Sam"}})
        assert data.current_step == 3
        assert data.personal_info.first_name == "Sam"
        assert data.personal_info.last_name is None
        assert data.call_preferences == CallPreferences()

    def test_unknown_keys_dropped(self):
        data = SignupData.from_dict({"legacy_field": 1, "personal_info": {"favorite_color": "blue"}})
        assert data == SignupData()

    def test_rejects_non_mapping(self):
        with pytest.raises(TypeError):
            SignupData.from_dict(["not", "an", "object"])

    def test_rejects_invalid_enum(self):
        with pytest.raises(ValueError):
            SignupData.from_dict({"user_type": "robot"})

    def test_rejects_non_integer_step(self):
        with pytest.raises(TypeError):
            SignupData.from_dict({"current_step": "three"})

    def test_rejects_non_object_record(self):
        with pytest.raises(TypeError):
            SignupData.from_dict({"personal_info": "Sam"})

    def test_wrong_collection_types_load_as_defaults(self):
        data = SignupData.from_dict({
            "call_preferences": {"days": None, "custom_times": ["monday"], "default_time": "09:00"},
        })
        assert data.call_preferences.days == []
        assert data.call_preferences.custom_times == {}
        assert data.call_preferences.default_time == "09:00"


class TestMergeRecord:
    def test_missing_keys_keep_values(self):
        info = PersonalInfo(first_name="Sarah")
        merged = merge_record(info, {"last_name": "Lee"})
        assert merged.first_name == "Sarah"
        assert merged.last_name == "Lee"

    def test_explicit_none_clears(self):
        merged = merge_record(PersonalInfo(first_name="Sarah"), {"first_name": None})
        assert merged.first_name is None

    def test_unknown_keys_ignored(self):
        merged = merge_record(PersonalInfo(first_name="Sarah"), {"shoe_size": 9})
        assert merged == PersonalInfo(first_name="Sarah")

    def test_wrong_collection_types_ignored(self):
        prefs = CallPreferences(days=["monday"], custom_times={"monday": "09:00"})
        merged = merge_record(prefs, {"days": None, "custom_times": "09:00", "time_of_day": "morning"})
        assert merged.days == ["monday"]
        assert merged.custom_times == {"monday": "09:00"}
        assert merged.time_of_day == "morning"

    def test_non_mapping_patch_ignored(self):
        prefs = CallPreferences(days=["monday"])
        assert merge_record(prefs, "days") is prefs


class TestMergeSignupData:
    def test_nested_merge_not_replace(self):
        data = merge_signup_data(SignupData(), {"personal_info": {"first_name": "Sarah"}})
        data = merge_signup_data(data, {"personal_info": {"last_name": "Lee"}})
        assert data.personal_info.first_name == "Sarah"
        assert data.personal_info.last_name == "Lee"

    def test_sequence_of_updates_preserves_untouched_fields(self):
        data = SignupData()
        patches = [
            {"personal_info": {"first_name": "Sarah"}},
            {"caregiver_info": {"email": "sarah@example.com"}},
            {"personal_info": {"zip_code": "94110"}},
            {"call_preferences": {"days": ["monday"]}},
            {"current_step": 4},
            {"personal_info": {"phone": "(555) 123-4567"}},
        ]
        for patch in patches:
            data = merge_signup_data(data, patch)
        assert data.personal_info == PersonalInfo(
            first_name="Sarah", zip_code="94110", phone="(555) 123-4567"
        )
        assert data.caregiver_info.email == "sarah@example.com"
        assert data.call_preferences.days == ["monday"]
        assert data.call_preferences.default_time == "14:00"
        assert data.current_step == 4

    def test_record_instance_replaces_wholesale(self):
        data = merge_signup_data(SignupData(), {"personal_info": {"first_name": "Sarah"}})
        data = merge_signup_data(data, {"personal_info": PersonalInfo(last_name="Lee")})
        assert data.personal_info.first_name is None
        assert data.personal_info.last_name == "Lee"

    def test_original_not_mutated(self):
        original = SignupData()
        merge_signup_data(original, {"personal_info": {"first_name": "Sarah"}, "current_step": 2})
        assert original == SignupData()

    def test_enum_strings_coerced(self):
        data = merge_signup_data(SignupData(), {"user_type": "loved-one", "verification_method": "email"})
        assert data.user_type == UserType.LOVED_ONE
        assert data.verification_method == VerificationMethod.EMAIL

    def test_invalid_values_skipped(self):
        data = merge_signup_data(SignupData(), {
            "user_type": "robot",
            "current_step": "3",
            "mystery": True,
            "personal_info": "Sarah",
            "is_verified": True,
        })
        assert data.user_type is None
        assert data.current_step == 1
        assert data.personal_info == PersonalInfo()
        assert data.is_verified is True

    def test_bool_is_not_a_step(self):
        assert merge_signup_data(SignupData(), {"current_step": True}).current_step == 1

    def test_empty_patch_is_noop(self):
        data = SignupData(current_step=3)
        assert merge_signup_data(data, {}) is data
        assert merge_signup_data(data, None) is data

    def test_non_mapping_patch_is_noop(self):
        data = SignupData(current_step=3)
        assert merge_signup_data(data, "garbage") is data
        assert merge_signup_data(data, 5) is data
