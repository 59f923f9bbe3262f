import json

import pytest

from ask_steps.conversation import ConversationManager, with_messages
from ask_steps.errors import RenderError
from ask_steps.models import Message, Role


class TestMessage:
    def test_role_from_string(self):
        message = Message("user", "Hello")
        assert message.role is Role.USER

    def test_invalid_role(self):
        with pytest.raises(ValueError):
            Message("narrator", "Once upon a time")

    def test_stamped_keeps_existing_timestamp(self):
        message = Message(Role.USER, "Hello", 10.0)
        assert message.stamped(20.0) is message
        assert Message(Role.USER, "Hello").stamped(20.0).timestamp == 20.0

    def test_dict_round_trip(self):
        message = Message(Role.ASSISTANT, "Hi there", 1700000000.0)
        data = message.to_dict()
        assert data == {"role": "assistant", "content": "Hi there", "timestamp": 1700000000.0}
        assert Message.from_dict(data) == message

    def test_from_dict_with_text_parts(self):
        data = {"role": "user", "content": [{"type": "text", "text": "look"}, {"type": "image_url", "image_url": {}}]}
        assert Message.from_dict(data).content == "look"

    def test_to_api_format(self):
        assert Message("system", "Be brief", 5.0).to_api_format() == {"role": "system", "content": "Be brief"}


class TestConversationManager:
    def test_add_messages_keeps_order_and_stamps(self):
        manager = ConversationManager()
        manager.add_messages(Message("user", "one"), Message("assistant", "two", 1.0), timestamp=99.0)
        messages = manager.get_messages()
        assert [m.content for m in messages] == ["one", "two"]
        assert messages[0].timestamp == 99.0
        assert messages[1].timestamp == 1.0

    def test_messages_without_timestamp_get_append_time(self):
        manager = ConversationManager([Message("user", "hi")])
        assert manager.get_last_message().timestamp is not None

    def test_get_messages_returns_copy(self):
        manager = ConversationManager([Message("user", "hi")])
        manager.get_messages().clear()
        assert len(manager) == 1

    def test_render_and_add(self):
        manager = ConversationManager()
        message = manager.render_and_add("Hi {{.name}}", Role.USER, {"name": "Bob"})
        assert message.content == "Hi Bob"
        assert manager.get_last_message() is message

    def test_render_failure_appends_nothing(self):
        manager = ConversationManager([Message("user", "first")])
        with pytest.raises(RenderError):
            manager.render_and_add("Hi {{.missing}}", Role.USER, {})
        assert len(manager) == 1

    def test_custom_renderer(self):
        manager = ConversationManager()
        manager.render_and_add("shout", "user", {}, renderer=lambda template, bindings: template.upper())
        assert manager.get_last_message().content == "SHOUT"

    def test_get_single_prompt(self):
        manager = ConversationManager([Message("system", "sys"), Message("user", "question")])
        assert manager.get_single_prompt() == "sys\nquestion"

    def test_with_messages_option(self):
        manager = ConversationManager([Message("user", "first")])
        with_messages(Message("assistant", "second"))(manager)
        assert [m.content for m in manager] == ["first", "second"]

    def test_save_and_load(self, tmp_path):
        manager = ConversationManager([Message("system", "sys", 1.0), Message("user", "hi", 2.0)])
        path = tmp_path / "nested" / "conversation.json"
        manager.save(path)

        assert json.loads(path.read_text())[1] == {"role": "user", "content": "hi", "timestamp": 2.0}
        loaded = ConversationManager.load(path)
        assert loaded.get_messages() == manager.get_messages()

    def test_load_rejects_non_list(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"role": "user"}')
        with pytest.raises(ValueError, match="JSON list"):
            ConversationManager.load(path)
