from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from zork_app.create_assistant import create_zork_assistant, read_system_prompt


@pytest.fixture
def prompt_file(tmp_path):
    path = tmp_path / "system_prompt.txt"
    path.write_text("Sos el Zork Master.\n", encoding="utf-8")
    return str(path)


def test_read_system_prompt_strips_whitespace(prompt_file):
    assert read_system_prompt(prompt_file) == "Sos el Zork Master."


def test_read_system_prompt_rejects_empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("   \n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_system_prompt(str(path))


def test_create_zork_assistant_sends_prompt_and_model(prompt_file):
    client = MagicMock()
    client.beta.assistants.create.return_value = SimpleNamespace(id="asst_nuevo")

    assistant_id = create_zork_assistant(client, prompt_file, "gpt-4o-mini")

    assert assistant_id == "asst_nuevo"
    kwargs = client.beta.assistants.create.call_args.kwargs
    assert kwargs["instructions"] == "Sos el Zork Master."
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}


# --- flask CLI commands ---

def test_cli_create_assistant_prints_id(app, assistant, prompt_file):
    assistant.client.beta.assistants.create.return_value = SimpleNamespace(id="asst_cli")

    result = app.test_cli_runner().invoke(args=["create-assistant", "--prompt-file", prompt_file])

    assert result.exit_code == 0
    assert "OPENAI_ASSISTANT_ID=asst_cli" in result.output


def test_cli_list_conversations(app, client):
    client.post('/api/chat', json={"message": "mirar", "conversationId": "partida-cli"})

    result = app.test_cli_runner().invoke(args=["list-conversations"])

    assert result.exit_code == 0
    assert "partida-cli" in result.output
    assert "1 conversation(s)." in result.output


def test_cli_create_db(app):
    result = app.test_cli_runner().invoke(args=["create-db"])
    assert "Database tables created successfully." in result.output
