"""Storefront API GraphQL documents."""

CART_FRAGMENT = """
fragment CartFields on Cart {
  id
  checkoutUrl
  totalQuantity
  attributes { key value }
  discountCodes { code applicable }
  cost {
    subtotalAmount { amount currencyCode }
    totalAmount { amount currencyCode }
  }
  lines(first: 100) {
    nodes {
      id
      quantity
      attributes { key value }
      cost {
        totalAmount { amount currencyCode }
        amountPerQuantity { amount currencyCode }
        compareAtAmountPerQuantity { amount currencyCode }
      }
      merchandise {
        ... on ProductVariant {
          id
          title
          availableForSale
          selectedOptions { name value }
          product { id handle title }
        }
      }
    }
  }
}
"""

_MUTATION_PAYLOAD = """
    cart { ...CartFields }
    userErrors { field message code }
    warnings { code message target }
"""

GET_CART = (
    """
query GetCart($cartId: ID!) {
  cart(id: $cartId) { ...CartFields }
}
"""
    + CART_FRAGMENT
)

CART_LINES_ADD = (
    """
mutation CartLinesAdd($cartId: ID!, $lines: [CartLineInput!]!) {
  cartLinesAdd(cartId: $cartId, lines: $lines) {"""
    + _MUTATION_PAYLOAD
    + """  }
}
"""
    + CART_FRAGMENT
)

CART_LINES_UPDATE = (
    """
mutation CartLinesUpdate($cartId: ID!, $lines: [CartLineUpdateInput!]!) {
  cartLinesUpdate(cartId: $cartId, lines: $lines) {"""
    + _MUTATION_PAYLOAD
    + """  }
}
"""
    + CART_FRAGMENT
)

CART_LINES_REMOVE = (
    """
mutation CartLinesRemove($cartId: ID!, $lineIds: [ID!]!) {
  cartLinesRemove(cartId: $cartId, lineIds: $lineIds) {"""
    + _MUTATION_PAYLOAD
    + """  }
}
"""
    + CART_FRAGMENT
)

CART_ATTRIBUTES_UPDATE = (
    """
mutation CartAttributesUpdate($cartId: ID!, $attributes: [AttributeInput!]!) {
  cartAttributesUpdate(cartId: $cartId, attributes: $attributes) {"""
    + _MUTATION_PAYLOAD
    + """  }
}
"""
    + CART_FRAGMENT
)

CART_DISCOUNT_CODES_UPDATE = (
    """
mutation CartDiscountCodesUpdate($cartId: ID!, $discountCodes: [String!]) {
  cartDiscountCodesUpdate(cartId: $cartId, discountCodes: $discountCodes) {"""
    + _MUTATION_PAYLOAD
    + """  }
}
"""
    + CART_FRAGMENT
)

GET_PRODUCT_BY_HANDLE = """
query GetProductByHandle($handle: String!) {
  product(handle: $handle) {
    id
    title
    handle
    selectedOrFirstAvailableVariant {
      id
      availableForSale
      title
      price { amount currencyCode }
      selectedOptions { name value }
    }
    variants(first: 10) {
      nodes {
        id
        availableForSale
        title
        price { amount currencyCode }
        selectedOptions { name value }
      }
    }
  }
}
"""
