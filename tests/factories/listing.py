"""Factories for generating test Listing instances."""

import factory
from faker import Faker

from nftmirror.data.models.listing import Listing, ListingStatus
from tests.factories.events import MARKETPLACE, NFT_CONTRACT, generate_address

fake = Faker()


class ListingFactory(factory.Factory):
    """Factory for Listing model.

    Usage:
        listing = ListingFactory(token_id=7)
        sold = ListingFactory(status=ListingStatus.SOLD, buyer=generate_address())
    """

    class Meta:
        model = Listing

    marketplace_address = MARKETPLACE
    listing_id = factory.Sequence(lambda n: n + 1)
    nft_contract = NFT_CONTRACT
    token_id = factory.Sequence(lambda n: n + 1)
    seller = factory.LazyFunction(generate_address)
    price = factory.LazyFunction(lambda: fake.random_int(min=1, max=1000) * 10**15)
    status = ListingStatus.ACTIVE
    listed_block = factory.Sequence(lambda n: 200 + n)
