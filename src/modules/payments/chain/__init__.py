"""On-chain (Solana) payment verification."""
