from .errors import (
    SealKitError,
    InvalidInput,
    DecryptionFailed,
    ConversationNotFound,
    AccessDenied,
    CryptoUnavailable,
    )
from .provider import CryptoProvider, b64_encode, b64_decode
from .keys import IdentityKeyPair, KeyPairService, load_public_key, serialize_public_key
from .kdf import (
    KeyDerivation,
    Argon2idKdf,
    ScryptKdf,
    GenericHashFallbackKdf,
    kdf_from_name,
    )
from .vault import (
    EncryptedPrivateKeyBlob,
    PrivateKeyVault,
    KeyStorage,
    SessionKeyStorage,
    FallbackFileKeyStorage,
    UnlockedKeySession,
    create_key_storage,
    )
from .conversation import (
    AccessContext,
    WrappedKeyGrant,
    SaltStore,
    GrantStore,
    KeyDirectory,
    ConversationKeyManager,
    )
from .ciphers import MessageCipher, MediaCipher, EncryptedAttachment, envelope_length
from .core import SecureMessagingCore
