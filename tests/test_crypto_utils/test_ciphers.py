import pytest

from sealkit.crypto_utils import (
    DecryptionFailed,
    EncryptedAttachment,
    InvalidInput,
    MediaCipher,
    MessageCipher,
    envelope_length,
)


@pytest.fixture
def key(provider) -> bytes:
    return provider.random(32)


@pytest.fixture
def messages(provider) -> MessageCipher:
    return MessageCipher(provider)


@pytest.fixture
def media(provider) -> MediaCipher:
    return MediaCipher(provider, max_plaintext_bytes=64 * 1024)


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("text", ["hello", "", "héllo wörld ✓", "x" * 5000])
def test_message_round_trip(messages, key, text):
    env = messages.encrypt(text, key)
    assert len(env) == envelope_length(len(text.encode("utf-8")))
    assert messages.decrypt(env, key) == text


def test_same_plaintext_never_same_envelope(messages, key):
    envs = {messages.encrypt("hello", key) for _ in range(50)}
    assert len(envs) == 50
    assert len({e[:24] for e in envs}) == 50


def test_every_single_byte_flip_is_detected(messages, key):
    env = messages.encrypt("hello", key)
    for i in range(len(env)):
        tampered = bytearray(env)
        tampered[i] ^= 0x80
        with pytest.raises(DecryptionFailed):
            messages.decrypt(bytes(tampered), key)


@pytest.mark.parametrize("cut", [1, 16, 39, 40, 44])
def test_truncation_is_detected(messages, key, cut):
    env = messages.encrypt("hello", key)
    with pytest.raises(DecryptionFailed):
        messages.decrypt(env[:-cut], key)


def test_wrong_key_fails(messages, key, provider):
    env = messages.encrypt("hello", key)
    with pytest.raises(DecryptionFailed):
        messages.decrypt(env, provider.random(32))


def test_non_utf8_plaintext_fails_closed(media, messages, key):
    env = media.encrypt(b"\xff\xfe\xfd", key)
    with pytest.raises(DecryptionFailed):
        messages.decrypt(env, key)


def test_bad_arguments(messages, key):
    with pytest.raises(InvalidInput):
        messages.encrypt("hello", b"\x00" * 16)
    with pytest.raises(InvalidInput):
        messages.encrypt(b"bytes are not text", key)


def test_b64_transport(messages, key):
    env = messages.encrypt_b64("hello", key)
    assert isinstance(env, str)
    assert messages.decrypt_b64(env, key) == "hello"
    with pytest.raises(DecryptionFailed):
        messages.decrypt_b64("%%%", key)


# -----------------------------------------------------------------------------
# Media
# -----------------------------------------------------------------------------

def test_media_round_trip(media, key):
    data = bytes(range(256)) * 100
    env = media.encrypt(data, key)
    assert len(env) == envelope_length(len(data))
    assert media.decrypt(env, key) == data


def test_media_tamper_detected(media, key):
    data = b"%PDF-1.4 fake pdf body" * 10
    env = bytearray(media.encrypt(data, key))
    env[len(env) // 2] ^= 0x01
    with pytest.raises(DecryptionFailed):
        media.decrypt(bytes(env), key)


def test_media_size_cap(media, key):
    media.encrypt(b"\x00" * media.max_plaintext_bytes, key)
    with pytest.raises(InvalidInput):
        media.encrypt(b"\x00" * (media.max_plaintext_bytes + 1), key)


def test_attachment_with_thumbnail(media, key):
    data = b"\x89PNG" + b"\x00" * 1000
    thumb = b"\xff\xd8\xff" + b"\x01" * 100
    att = media.encrypt_attachment(data, key, mime_type="image/png", thumbnail=thumb)

    assert isinstance(att, EncryptedAttachment)
    assert att.mime_type == "image/png"
    assert att.size_bytes == len(data)
    assert media.decrypt_attachment(att, key) == (data, thumb)


def test_attachment_without_thumbnail(media, key):
    att = media.encrypt_attachment(b"video bytes", key, mime_type="video/mp4")
    assert att.thumbnail_envelope is None
    assert media.decrypt_attachment(att, key) == (b"video bytes", None)


def test_attachment_requires_mime_type(media, key):
    with pytest.raises(InvalidInput):
        media.encrypt_attachment(b"data", key, mime_type="  ")
