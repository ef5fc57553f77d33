# zork_app/create_assistant.py
import logging
import os
from typing import Optional

from openai import OpenAI
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ASSISTANT_NAME = "Zork Master - Zork Argento"


def read_system_prompt(prompt_file_path: str) -> str:
    logger.info(f"Attempting to read system prompt from: {prompt_file_path}")
    with open(prompt_file_path, "r", encoding="utf-8") as f:
        prompt_content = f.read().strip()
    if not prompt_content:
        raise ValueError(f"System prompt file is empty: {prompt_file_path}")
    return prompt_content


def create_zork_assistant(client: OpenAI, prompt_file_path: str, model: str,
                          name: str = ASSISTANT_NAME) -> str:
    """
    Create the OpenAI Assistant that narrates the game, using the version-controlled
    system prompt. Returns the new assistant ID.
    """
    instructions = read_system_prompt(prompt_file_path)
    logger.info(f"Sending request to OpenAI to create Assistant '{name}' with model {model}...")
    assistant = client.beta.assistants.create(
        name=name,
        instructions=instructions,
        model=model,
        response_format={"type": "json_object"},
    )
    logger.info(f"Assistant created with ID: {assistant.id}")
    return assistant.id


def main(prompt_file_path: Optional[str] = None) -> Optional[str]:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.error("CRITICAL: OPENAI_API_KEY not found in environment. Cannot proceed.")
        return None

    prompt_file_path = prompt_file_path or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "data", "system_prompt.txt"
    )
    assistant_id = create_zork_assistant(
        OpenAI(api_key=api_key), prompt_file_path, os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    )
    print(f"Add this line to your .env file:\nOPENAI_ASSISTANT_ID={assistant_id}")
    return assistant_id


if __name__ == "__main__":
    main()
