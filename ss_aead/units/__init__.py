from .suites import CipherSuite, CIPHER_SUITES, lookup, supported_suites
from .kdf    import derive_master_key
from .subkey import derive_session_key, SUBKEY_INFO
from .nonce  import NonceCounter, increment
from .codec  import ChunkCipher, seal_chunk, open_chunk, MAX_PAYLOAD_SIZE
