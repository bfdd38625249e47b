"""Request bodies accepted by the HTTP API."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from continuum_faucet.blockchain.networks import is_valid_rpc_url


class AddChainRequest(BaseModel):
    """Body of ``POST /add-chain``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    chain_id: int = Field(alias="chainId", gt=0)
    rpc_url: str | None = Field(default=None, alias="rpcUrl")
    block_explorer_url: str | None = Field(default=None, alias="blockExplorerUrl")

    @field_validator("rpc_url")
    @classmethod
    def _check_rpc_url(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_rpc_url(value):
            raise ValueError("must be an http or https URL with a host")
        return value


class AddTokenRequest(BaseModel):
    """Body of ``POST /add-token``.

    ``amount`` is a decimal in whole tokens; numbers are accepted and kept
    as their string form so no precision is lost before conversion.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    name: str = Field(min_length=1)
    token_address: str = Field(alias="tokenAddress")
    decimals: int = Field(ge=0)
    chain_id: int = Field(alias="chainId", gt=0)
    amount: str


class RequestTokensRequest(BaseModel):
    """Body of ``POST /request-tokens``."""

    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(alias="walletAddress")
