"""Tests for the message composer."""

import pytest

from taskchat.schemas.chat import Conversation
from taskchat.schemas.message import Attachment
from taskchat.services.composer import Composer, is_accepted_attachment


CONVERSATION = Conversation(id="c1", participant_id="peter", participant_name="Peter")


def pdf(name="brief.pdf", media_type="application/pdf"):
    return Attachment(name=name, type=media_type, size=2048, url="user-content/brief.pdf")


class TestComposer:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   ", "\n\t"])
    async def test_empty_submission_is_a_noop(self, people, content):
        result = await Composer(people.messages, "viewer").submit(CONVERSATION, content)

        assert result is None
        assert people.messages.inserted == []

    @pytest.mark.asyncio
    async def test_submission_addresses_the_other_participant(self, people):
        saved = await Composer(people.messages, "viewer").submit(CONVERSATION, " hi there ")

        assert saved.chat_id == "c1"
        assert saved.sender_id == "viewer"
        assert saved.receiver_id == "peter"
        assert saved.content == " hi there "
        assert saved.read is False
        assert saved.attachment is None

    @pytest.mark.asyncio
    async def test_attachment_only_message_is_sent_without_content(self, people):
        saved = await Composer(people.messages, "viewer").submit(CONVERSATION, "  ", pdf())

        assert saved.content is None
        assert saved.attachment.name == "brief.pdf"
        assert people.messages.inserted[0]["attachment"]["size"] == 2048

    def test_unsupported_attachment_is_rejected(self, people):
        archive = Attachment(name="dump.zip", type="application/zip", size=10, url="x")

        with pytest.raises(ValueError, match="Unsupported attachment"):
            Composer(people.messages, "viewer").build(CONVERSATION, "see file", archive)


@pytest.mark.parametrize(
    "attachment, accepted",
    [
        (Attachment(name="photo.png", type="image/png", size=1, url="u"), True),
        (Attachment(name="notes.docx", type="", size=1, url="u"), True),
        (Attachment(name="LEGACY.DOC", type="application/octet-stream", size=1, url="u"), True),
        (Attachment(name="brief.pdf", type="application/pdf", size=1, url="u"), True),
        (Attachment(name="script.sh", type="text/x-sh", size=1, url="u"), False),
    ],
)
def test_accept_filter_matches_file_picker(attachment, accepted):
    assert is_accepted_attachment(attachment) is accepted
