"""Built-in prompts.

Used to seed the prompt store and as the literal fallback for each
stage when the store has no text for a key.
"""

from __future__ import annotations

from pydantic import BaseModel

NEWS_FETCH = "news_fetch"
ARTICLE_RESEARCH = "article_research"
ARTICLE_WRITING = "article_writing"
ARTICLE_METADATA = "article_metadata"
IMAGE_GENERATION = "image_generation"


class PromptDefinition(BaseModel):
    """A named, keyed prompt template."""

    key: str
    name: str
    description: str = ""
    model: str = ""
    section: str = ""
    prompt: str


NEWS_FETCH_PROMPT = """\
Find 10 nyheder fra ejendomsbranchen i Danmark, eller med relevans for Danmark, som har fået meget omtale den seneste uge - rank med de mest spændende, unikke og aktuelle først. Det skal være relevant for ejere af erhvervsejendomme (målgruppen er udlejere af erhvervslokaler).

KRITISK: Du SKAL returnere dit svar som RENT JSON uden nogen ekstra tekst, forklaringer eller kommentarer.

Returner resultaterne i denne EKSAKTE JSON struktur:
{
  "newsItems": [
    {
      "title": "Nyhedstitel",
      "summary": "2-3 sætninger som opsummerer historien",
      "sources": ["URL1", "URL2", "URL3"],
      "date": "Dato eller tidsramme"
    }
  ]
}

VIGTIGT:
- "sources" skal være et array af faktiske URLs hvor du fandt information om nyheden (f.eks. ["https://estatemedia.dk/article/...", "https://edc.dk/artikel/..."]). Inkluder ALLE relevante kilder du brugte.
- Sørg for at returnere præcis 10 nyhedshistorier.
- Dit HELE svar skal være valid JSON - start med { og slut med }
- Inkludér INGEN tekst før eller efter JSON'en
- Skriv IKKE "Her er JSON'en" eller lignende - returner KUN JSON"""

ARTICLE_RESEARCH_PROMPT = """\
Researche og indsaml detaljeret information om følgende nyhedshistorie fra ejendomsbranchen i Danmark:

Titel: {{title}}
Resumé: {{summary}}
{{#if sources}}Kilder:
{{sources}}{{/if}}
{{#if date}}Dato: {{date}}{{/if}}

Søg på nettet efter yderligere detaljer, kontekst og relateret information om denne nyhedshistorie. Levér:
1. Nøglefakta og detaljer
2. Baggrundskontekst
3. Citater fra relevante kilder (hvis tilgængelige)
4. Indvirkning på det danske erhvervsejendomsmarked
5. Relaterede udviklinger eller tendenser

KRITISK: Under din research, hold styr på ALLE de URLs du bruger som kilder. Returner dem i dit research svar under en "Kilder brugt:" sektion.

Formatér dine research-resultater tydeligt med overskrifter og punkter."""

ARTICLE_WRITING_PROMPT = """\
Du er en prisvindende dansk journalist. Baseret på følgende research, skriv en omfattende, professionel nyhedsartikel på DANSK om denne erhvervsejendomshistorie:

Original nyhed:
Titel: {{title}}
Resumé: {{summary}}

Research-resultater:
{{researchFindings}}

Skriv en velstruktureret artikel med:
1. Start med et overbevisende indledende afsnit (IKKE en overskrift - titlen vises allerede øverst på siden)
2. Klare brødtekst-sektioner med 2-3 underoverskrifter (## heading) - maksimalt 3
3. Brug kun ### overskrifter hvis det er absolut nødvendigt
4. Citater og specifikke detaljer fra research
5. Kontekst om det danske erhvervsejendomsmarked
6. Professionel, journalistisk tone

VIGTIGT:
- Artiklen skal være på DANSK
- Start IKKE artiklen med en # overskrift (h1) - siden har allerede en titel
- Brug kun ## (h2) eller ### (h3) overskrifter i artikelteksten
- Inkludér IKKE "Kilde:" eller kildehenvisninger i bunden af artiklen
- Returner KUN artikelindholdet i markdown format
- Inkludér IKKE opfølgende spørgsmål eller meta-kommentarer
- Artiklen skal slutte med det faktiske indhold, ikke med spørgsmål til læseren

Formatér artiklen i markdown med korrekte overskrifter (##, ###)."""

ARTICLE_METADATA_PROMPT = """\
Baseret på denne artikel, generer følgende metadata i JSON format:

Artikel:
{{articleContent}}

Levér:
1. slug: URL-venlig slug (små bogstaver, bindestreger, ingen specialtegn)
2. metaDescription: SEO meta beskrivelse på DANSK (150-160 tegn)
3. summary: Kort resumé til artikelforhåndsvisning på DANSK (2-3 sætninger)
4. categories: Kommaseparerede relevante kategorier på DANSK. Vælg KUN fra disse kategorier:
   - Investering
   - Byggeri
   - Kontor
   - Lager
   - Detailhandel
   - Logistik
   - Hotel
   - Industri
   - Bolig
   - Bæredygtighed

Svar KUN med valid JSON i denne præcise struktur:
{
  "slug": "eksempel-slug",
  "metaDescription": "Beskrivelse her",
  "summary": "Resumé her",
  "categories": "Kategori1, Kategori2"
}"""

IMAGE_GENERATION_PROMPT = (
    "You are an award winning professional journalistic photographer. Your photos are "
    "realistic, proper photographies of the news story. Make a hero image in landscape "
    "mode with no text, for an article in a digital newspaper about commercial real "
    "estate, specifically related to the article with the headline: {{title}}"
)


DEFAULT_PROMPTS: dict[str, PromptDefinition] = {
    NEWS_FETCH: PromptDefinition(
        key=NEWS_FETCH,
        name="Daily News Fetch",
        description="Finds commercial real estate news from Denmark relevant to property owners",
        model="gpt-5-nano",
        section="Daily News",
        prompt=NEWS_FETCH_PROMPT,
    ),
    ARTICLE_RESEARCH: PromptDefinition(
        key=ARTICLE_RESEARCH,
        name="Article Research",
        description="Researches a news story using web search",
        model="gpt-5-mini",
        section="Article Generation",
        prompt=ARTICLE_RESEARCH_PROMPT,
    ),
    ARTICLE_WRITING: PromptDefinition(
        key=ARTICLE_WRITING,
        name="Article Writing",
        description="Writes a professional news article from research findings",
        model="gpt-5-mini",
        section="Article Generation",
        prompt=ARTICLE_WRITING_PROMPT,
    ),
    ARTICLE_METADATA: PromptDefinition(
        key=ARTICLE_METADATA,
        name="Article Metadata Generation",
        description="Generates slug, meta description, summary and categories",
        model="gpt-5-mini",
        section="Article Generation",
        prompt=ARTICLE_METADATA_PROMPT,
    ),
    IMAGE_GENERATION: PromptDefinition(
        key=IMAGE_GENERATION,
        name="Hero Image Generation",
        description="Generates a realistic hero image for an article",
        model="gemini-3-pro-image-preview",
        section="Image Generation",
        prompt=IMAGE_GENERATION_PROMPT,
    ),
}
