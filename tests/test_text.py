"""Tests for text normalization helpers."""

from ledgerkit.utils.text import (
    build_merchant_key,
    decode_statement,
    find_installment,
    fix_mojibake,
    has_installment_marker,
    normalize_key,
    normalize_text,
    split_description,
    strip_installment_marker,
    token_set,
)


def test_normalize_text():
    assert normalize_text("  Pão de Açúcar  #123 ") == "PAO DE ACUCAR 123"
    assert normalize_text("PIX ENVIADO: João") == "PIX ENVIADO: JOAO"
    assert normalize_text(None) == ""


def test_normalize_key():
    assert normalize_key("Valor (R$)") == "valor r"
    assert normalize_key("Data Lançamento") == "data lancamento"


def test_fix_mojibake():
    assert fix_mojibake("DescriÃ§Ã£o") == "Descrição"
    assert fix_mojibake("plain") == "plain"


def test_decode_statement_strips_bom():
    text, encoding = decode_statement(b"\xef\xbb\xbfData;Valor")
    assert text == "Data;Valor"
    assert encoding == "utf-8"


def test_find_installment():
    assert find_installment("LOJA ABC PARCELA 2/10") == (2, 10)
    assert find_installment("Magazine PARC 03 DE 12") == (3, 12)
    assert find_installment("TV 4/12 PARC") == (4, 12)
    assert find_installment("Installment 1 of 3") == (1, 3)
    assert find_installment("NETFLIX.COM") is None


def test_installment_marker_rejects_impossible_counts():
    assert not has_installment_marker("PARCELA 5/3")


def test_strip_installment_marker():
    assert strip_installment_marker("LOJA ABC PARCELA 2/10") == "LOJA ABC"


def test_split_description():
    assert split_description("PIX ENVIADO: Maria Souza") == ("PIX ENVIADO", "MARIA SOUZA")
    assert split_description("NETFLIX.COM") == (None, "NETFLIX.COM")


def test_build_merchant_key():
    assert build_merchant_key("PIX ENVIADO: Maria Souza") == "maria souza"
    assert build_merchant_key("NETFLIX.COM") == "netflix com"
    assert build_merchant_key("LOJA ABC PARCELA 2/10") == "loja abc"
    assert build_merchant_key("PIX 123") == "transacao"


def test_token_set():
    assert token_set("PIX para JOAO da SILVA") == {"PIX", "PARA", "JOAO", "SILVA"}
