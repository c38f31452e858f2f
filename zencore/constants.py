# Container kinds
KIND_TAR_GZ = "tar.gz"
KIND_TAR_ZST = "tar.zst"
KIND_ZIP = "zip"

CONTAINER_KINDS = (KIND_TAR_GZ, KIND_TAR_ZST, KIND_ZIP)
STREAMING_KINDS = (KIND_TAR_GZ, KIND_TAR_ZST)

# Compression levels: (min, max, default)
GZIP_LEVELS = (0, 9, 6)
ZSTD_LEVELS = (1, 22, 3)
ZIP_LEVELS = (0, 9, 6)

# zstd levels above this require an explicit opt-in
ZSTD_MAX_REGULAR_LEVEL = 19


# Envelope layout: version u8 | cipher_id u8 | salt[22] | nonce[12] | ciphertext+tag
ENVELOPE_VERSION = 1

CIPHER_AES_256_GCM = 0
CIPHER_CHACHA20_POLY1305 = 1

CIPHER_NAMES = {
    CIPHER_AES_256_GCM: "AES-256-GCM",
    CIPHER_CHACHA20_POLY1305: "ChaCha20-Poly1305",
}

SALT_TEXT_SIZE = 22   # 16 random bytes, unpadded base64
SALT_RAW_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
ENVELOPE_HEADER_SIZE = 2 + SALT_TEXT_SIZE + NONCE_SIZE

# Argon2id parameters (argon2 crate defaults used by earlier releases)
ARGON_TIME_COST = 2
ARGON_MEMORY_COST_KIB = 19 * 1024
ARGON_PARALLELISM = 1


# Digest algorithms (canonical names)
DIGEST_SHA256 = "SHA-256"
DIGEST_SHA3_256 = "SHA3-256"
DIGEST_BLAKE3 = "BLAKE3"

DIGEST_CHUNK_SIZE = 64 * 1024

SIDECAR_SUFFIX = ".sha256"
BACKUP_SUFFIX = ".bak"

STATE_FILE_NAME = "archives.json"
DEFAULT_DATE_FORMAT = "%Y%m%d_%H%M%S"
